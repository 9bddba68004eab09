# routes/deals/checklist.py
"""
Required-document checklist for a deal.
"""

from flask import jsonify, g
from services.compliance import ComplianceError, parse_deal_snapshot, ruleset_store
from . import deals_bp
from ..decorators import org_required
from ..helpers import error_response, service_error_response, get_json_body


@deals_bp.route('/<deal_id>/documents/checklist', methods=['POST'])
@org_required
def document_checklist(deal_id):
    """
    Evaluate the deal against its jurisdiction's active rule sets.

    Body: {dealSnapshot}. The snapshot is built fresh by the caller from the
    current deal; it is never cached here.
    """
    body = get_json_body()
    if body is None:
        return error_response('Request body must be a JSON object', 400)

    snapshot_data = body.get('dealSnapshot')
    if isinstance(snapshot_data, dict):
        snapshot_data = {**snapshot_data, 'dealId': deal_id, 'orgId': g.org_id}

    try:
        snapshot = parse_deal_snapshot(snapshot_data)
        evaluation = ruleset_store.evaluate_for_deal(g.org_id, snapshot)
    except ComplianceError as e:
        return service_error_response(e)

    data = evaluation.to_dict()
    data['dealId'] = deal_id
    data['hasBlockingErrors'] = evaluation.has_blocking_errors
    return jsonify({'success': True, 'data': data})
