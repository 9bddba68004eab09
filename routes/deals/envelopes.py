# routes/deals/envelopes.py
"""
E-signature envelope routes for a deal: send, status, void, reconcile,
stub completion and signed download.
"""

import base64
import binascii
from flask import jsonify, g, Response
from services.esign import ESignError, EnvelopeDocument
from . import deals_bp
from ..decorators import org_required, max_body_size
from ..helpers import error_response, service_error_response, get_json_body, get_lifecycle_manager


def _decode_documents(raw_documents):
    """
    Decode [{name, contentBase64, contentType?}] into EnvelopeDocuments.

    Returns (documents, errors).
    """
    if not isinstance(raw_documents, list) or not raw_documents:
        return None, ['documents: at least one document is required']

    documents = []
    errors = []
    for index, item in enumerate(raw_documents):
        if not isinstance(item, dict):
            errors.append(f'documents[{index}]: must be an object')
            continue
        name = (item.get('name') or '').strip() if isinstance(item.get('name'), str) else ''
        if not name:
            errors.append(f'documents[{index}].name: is required')
            continue
        try:
            content = base64.b64decode(item.get('contentBase64') or '', validate=True)
        except (binascii.Error, TypeError, ValueError):
            errors.append(f'documents[{index}].contentBase64: must be base64')
            continue
        documents.append(EnvelopeDocument(
            name=name,
            content=content,
            content_type=item.get('contentType') or 'application/pdf'
        ))
    return documents, errors


# =============================================================================
# SEND FOR SIGNATURE
# =============================================================================

@deals_bp.route('/<deal_id>/documents/send-for-esign', methods=['POST'])
@org_required
@max_body_size('REQUEST_MAX_BYTES_ESIGN')
def send_for_esign(deal_id):
    """
    Create a signing envelope with the configured provider.

    Body: {documents: [{name, contentBase64}], recipients: [...], requestId?}
    """
    body = get_json_body()
    if body is None:
        return error_response('Request body must be a JSON object', 400)

    documents, errors = _decode_documents(body.get('documents'))
    if errors:
        return error_response('Invalid documents.', 400, errors)

    try:
        envelope = get_lifecycle_manager().create_envelope(
            g.org_id,
            deal_id,
            documents,
            body.get('recipients'),
            request_id=body.get('requestId')
        )
    except ESignError as e:
        return service_error_response(e)

    return jsonify({'success': True, 'data': envelope.to_dict()}), 201


# =============================================================================
# STATUS
# =============================================================================

@deals_bp.route('/<deal_id>/documents/envelopes', methods=['GET'])
@org_required
def list_envelopes(deal_id):
    envelopes = get_lifecycle_manager().list_envelopes(g.org_id, deal_id)
    return jsonify({'success': True, 'data': [e.to_dict() for e in envelopes]})


@deals_bp.route('/<deal_id>/documents/envelopes/<envelope_id>', methods=['GET'])
@org_required
def get_envelope(deal_id, envelope_id):
    try:
        envelope = get_lifecycle_manager().get_envelope(g.org_id, envelope_id, deal_id)
    except ESignError as e:
        return service_error_response(e)
    return jsonify({'success': True, 'data': envelope.to_dict()})


@deals_bp.route('/<deal_id>/documents/envelopes/<envelope_id>/reconcile', methods=['POST'])
@org_required
def reconcile_envelope(deal_id, envelope_id):
    """Pull the current status from the provider (polling fallback)."""
    try:
        envelope = get_lifecycle_manager().reconcile(g.org_id, envelope_id, deal_id)
    except ESignError as e:
        return service_error_response(e)
    return jsonify({'success': True, 'data': envelope.to_dict()})


# =============================================================================
# VOID / COMPLETE
# =============================================================================

@deals_bp.route('/<deal_id>/documents/envelopes/<envelope_id>/void', methods=['POST'])
@org_required
def void_envelope(deal_id, envelope_id):
    """Void a non-terminal envelope. Body: {reason}."""
    body = get_json_body() or {}
    reason = body.get('reason') if isinstance(body.get('reason'), str) else ''

    try:
        envelope = get_lifecycle_manager().void_envelope(g.org_id, envelope_id, reason, deal_id)
    except ESignError as e:
        return service_error_response(e)
    return jsonify({'success': True, 'data': envelope.to_dict()})


@deals_bp.route('/<deal_id>/documents/envelopes/<envelope_id>/complete-stub', methods=['POST'])
@org_required
def complete_stub_envelope(deal_id, envelope_id):
    """Mark a stub envelope completed (development only)."""
    try:
        envelope = get_lifecycle_manager().complete_stub_envelope(g.org_id, envelope_id, deal_id)
    except ESignError as e:
        return service_error_response(e)
    return jsonify({'success': True, 'data': envelope.to_dict()})


# =============================================================================
# DOWNLOAD
# =============================================================================

@deals_bp.route('/<deal_id>/documents/envelopes/<envelope_id>/download-signed', methods=['GET'])
@org_required
def download_signed(deal_id, envelope_id):
    try:
        data = get_lifecycle_manager().download_signed(g.org_id, envelope_id, deal_id)
    except ESignError as e:
        return service_error_response(e)

    filename = f"signed-envelope-{envelope_id}.pdf"
    return Response(
        data,
        mimetype='application/pdf',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'}
    )
