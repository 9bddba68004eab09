# routes/compliance.py
"""
Compliance rule-set admin and evaluation endpoints.
"""

from datetime import datetime
from flask import Blueprint, request, jsonify, g
from services.compliance import (
    ComplianceError,
    evaluate_compliance,
    parse_deal_snapshot,
    ruleset_store,
)
from .decorators import org_required, max_body_size
from .helpers import error_response, service_error_response, get_json_body, parse_iso_datetime

compliance_bp = Blueprint('compliance', __name__, url_prefix='/compliance')


# =============================================================================
# RULE SETS
# =============================================================================

@compliance_bp.route('/rulesets', methods=['GET'])
@org_required
def list_rule_sets():
    """List the org's and platform-wide rule sets, optionally filtered."""
    try:
        active_on = parse_iso_datetime(request.args.get('activeOn'))
    except ValueError:
        return error_response('activeOn must be an ISO date', 400)

    try:
        rule_sets = ruleset_store.list_rule_sets(
            g.org_id,
            jurisdiction=request.args.get('jurisdiction') or None,
            active_on=active_on
        )
    except ComplianceError as e:
        return service_error_response(e)

    return jsonify({'success': True, 'data': [r.to_dict() for r in rule_sets]})


@compliance_bp.route('/rulesets', methods=['POST'])
@org_required
@max_body_size('REQUEST_MAX_BYTES_RULESETS')
def publish_rule_set():
    """
    Publish a new rule-set version.

    Body: {jurisdiction, effectiveFrom, effectiveTo?, rulesJson?, copyFromRuleSetId?}
    """
    body = get_json_body()
    if body is None:
        return error_response('Request body must be a JSON object', 400)

    jurisdiction = body.get('jurisdiction')
    if not jurisdiction:
        return error_response('jurisdiction is required', 400)

    try:
        effective_from = parse_iso_datetime(body.get('effectiveFrom')) or datetime.utcnow()
        effective_to = parse_iso_datetime(body.get('effectiveTo'))
    except ValueError:
        return error_response('effectiveFrom and effectiveTo must be ISO dates', 400)

    try:
        rule_set = ruleset_store.publish_version(
            g.org_id,
            jurisdiction,
            effective_from,
            effective_to=effective_to,
            rules_json=body.get('rulesJson'),
            copy_from_id=body.get('copyFromRuleSetId')
        )
    except ComplianceError as e:
        return service_error_response(e)

    return jsonify({'success': True, 'data': rule_set.to_dict()}), 201


@compliance_bp.route('/rulesets/<rule_set_id>', methods=['GET'])
@org_required
def get_rule_set(rule_set_id):
    try:
        rule_set = ruleset_store.get_rule_set(g.org_id, rule_set_id)
    except ComplianceError as e:
        return service_error_response(e)
    return jsonify({'success': True, 'data': rule_set.to_dict()})


# =============================================================================
# EVALUATION
# =============================================================================

@compliance_bp.route('/rulesets/evaluate', methods=['POST'])
@org_required
@max_body_size('REQUEST_MAX_BYTES_RULESETS')
def evaluate_rule_sets():
    """
    Evaluate a deal snapshot against the sets active today.

    Body: {jurisdiction?, dealSnapshot}. jurisdiction defaults to the
    snapshot's own.
    """
    body = get_json_body()
    if body is None:
        return error_response('Request body must be a JSON object', 400)

    try:
        snapshot = parse_deal_snapshot(body.get('dealSnapshot'))
        jurisdiction = body.get('jurisdiction') or snapshot.jurisdiction
        rule_sets = ruleset_store.resolve_active(g.org_id, jurisdiction, datetime.utcnow())
    except ComplianceError as e:
        return service_error_response(e)

    evaluation = evaluate_compliance(snapshot, [r.rules_json for r in rule_sets])
    data = evaluation.to_dict()
    data['ruleSetIds'] = [r.id for r in rule_sets]
    return jsonify({'success': True, 'data': data})
