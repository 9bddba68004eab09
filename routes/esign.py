# routes/esign.py
"""
E-sign provider webhooks and worker-triggered reconciliation.
"""

import logging
from flask import Blueprint, request, jsonify, Response
from services.esign import WebhookRequest
from .decorators import worker_secret_required
from .helpers import error_response, get_esign_services, get_json_body

logger = logging.getLogger(__name__)

esign_bp = Blueprint('esign', __name__, url_prefix='/esign')

DEFAULT_RECONCILE_LIMIT = 20
MAX_RECONCILE_LIMIT = 100


# =============================================================================
# WEBHOOK ENDPOINT
# =============================================================================

@esign_bp.route('/webhook/<provider>', methods=['POST'])
def esign_webhook(provider):
    """
    Receive signature events from a provider.

    Configure this URL with the provider, e.g.
    https://yourdomain.com/esign/webhook/dropboxsign

    Dropbox Sign needs the literal 'Hello API Event Received' to stop
    retrying; the stub gets JSON.
    """
    webhook = WebhookRequest(
        body=request.get_data(cache=True),
        content_type=request.content_type or '',
        form=request.form.to_dict(),
        headers={k: v for k, v in request.headers.items()}
    )

    result = get_esign_services()['ingress'].handle(provider, webhook)

    if result.text is not None:
        return Response(result.text, status=result.status_code, mimetype='text/plain')
    return jsonify(result.json_body), result.status_code


# =============================================================================
# WORKER RECONCILIATION
# =============================================================================

@esign_bp.route('/reconcile', methods=['POST'])
@worker_secret_required
def reconcile_pending():
    """
    Reconcile outstanding envelopes across all orgs.

    Body: {limit?: 1..100 (default 20), envelopeIds?: [...]}
    """
    body = get_json_body() or {}

    try:
        limit = int(body.get('limit', DEFAULT_RECONCILE_LIMIT))
    except (TypeError, ValueError):
        return error_response('limit must be an integer', 400)
    limit = max(1, min(MAX_RECONCILE_LIMIT, limit))

    envelope_ids = body.get('envelopeIds')
    if envelope_ids is not None and (
        not isinstance(envelope_ids, list) or not all(isinstance(i, str) for i in envelope_ids)
    ):
        return error_response('envelopeIds must be a list of strings', 400)

    result = get_esign_services()['manager'].reconcile_pending(limit=limit, envelope_ids=envelope_ids)
    logger.info(f"Worker reconcile processed {result['processed']} envelopes, {result['failed']} failed")
    return jsonify({'success': True, 'data': result})
