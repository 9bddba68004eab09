"""
Compliance Evaluator

Pure function from (DealSnapshot, rule sets) to an Evaluation. No I/O, no
side effects: callers resolve which rule sets are active beforehand.

Usage:
    from services.compliance import evaluate_compliance

    evaluation = evaluate_compliance(snapshot, [rule_set.rules_json for rule_set in active])
    evaluation.required_checklist   # sorted by document code
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from .schemas import rules_json_errors
from .types import (
    ChecklistItem,
    DealSnapshot,
    DealType,
    DocumentType,
    Evaluation,
    RulesConfig,
    ValidationIssue,
    WhenClause,
)

logger = logging.getLogger(__name__)

NOT_LEGAL_ADVICE_NOTICE = "Not legal advice. Validate output with licensed compliance counsel."
EXAMPLE_RULES_NOTICE = "Rule set includes non-authoritative examples; legal review required."

BASE_REASON = "Base checklist"
SCENARIO_REASON = "Scenario match"

_RETAIL_BASE = (
    DocumentType.BUYERS_ORDER,
    DocumentType.ODOMETER_DISCLOSURE,
    DocumentType.PRIVACY_NOTICE,
)

# Checklist seed that applies with or without any configuration
BASE_REQUIRED_DOCUMENTS = {
    DealType.CASH: _RETAIL_BASE,
    DealType.LEASE: _RETAIL_BASE,
    DealType.FINANCE: _RETAIL_BASE + (DocumentType.RETAIL_INSTALLMENT_CONTRACT,),
}


def when_matches(snapshot: DealSnapshot, when: WhenClause) -> bool:
    """Check a when-clause against a snapshot. Unset fields are wildcards."""
    if when.deal_types is not None and snapshot.deal_type not in when.deal_types:
        return False
    if when.has_trade_in is not None and when.has_trade_in != snapshot.has_trade_in:
        return False
    if when.is_out_of_state_buyer is not None and when.is_out_of_state_buyer != snapshot.is_out_of_state_buyer:
        return False
    if when.is_financed is not None and when.is_financed != snapshot.is_financed:
        return False
    if when.has_lienholder is not None and when.has_lienholder != snapshot.has_lienholder:
        return False

    gvwr = snapshot.vehicle.gvwr
    if when.gvwr_min is not None and (gvwr is None or gvwr < when.gvwr_min):
        return False
    if when.gvwr_max is not None and (gvwr is None or gvwr > when.gvwr_max):
        return False
    return True


def _coerce_rule_set(raw: Any) -> Optional[RulesConfig]:
    """Return a RulesConfig, or None when the input is not a valid rule set."""
    if isinstance(raw, RulesConfig):
        return raw

    errors = rules_json_errors(raw)
    if errors:
        logger.warning(f"Skipping malformed rule set: {errors[0]}")
        return None

    try:
        return RulesConfig.from_dict(raw)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Skipping unreadable rule set: {e}")
        return None


def evaluate_compliance(snapshot: DealSnapshot, rule_sets: Iterable[Any]) -> Evaluation:
    """
    Evaluate a deal snapshot against an ordered sequence of rule sets.

    Rule sets may be RulesConfig objects or raw dicts; raw dicts that fail
    schema validation are skipped. Document reasons accumulate across
    scenarios, computed fields merge last-wins in input order, and the
    checklist is sorted by document code.
    """
    notices = [NOT_LEGAL_ADVICE_NOTICE]
    required_reasons: Dict[DocumentType, List[str]] = {}
    optional_reasons: Dict[DocumentType, List[str]] = {}
    validation_errors: List[ValidationIssue] = []
    computed_fields: Dict[str, Any] = {}

    for doc_type in BASE_REQUIRED_DOCUMENTS[snapshot.deal_type]:
        required_reasons[doc_type] = [BASE_REASON]

    for raw in rule_sets:
        rule_set = _coerce_rule_set(raw)
        if rule_set is None:
            continue

        if rule_set.metadata.not_legal_advice:
            notices.append(EXAMPLE_RULES_NOTICE)

        for scenario in rule_set.scenarios:
            if not when_matches(snapshot, scenario.when):
                continue
            reason = scenario.notes or SCENARIO_REASON
            for doc_type in dict.fromkeys(scenario.required_documents):
                required_reasons.setdefault(doc_type, []).append(reason)
            for doc_type in dict.fromkeys(scenario.optional_documents):
                optional_reasons.setdefault(doc_type, []).append(reason)

        for rule in rule_set.validations:
            if not when_matches(snapshot, rule.when):
                continue
            validation_errors.append(ValidationIssue(
                code=rule.code,
                message=rule.message,
                severity=rule.severity,
                field=rule.field
            ))

        computed_fields.update(rule_set.computed_fields)

    checklist = [
        ChecklistItem(doc_type=doc_type, required=True, reason='; '.join(reasons))
        for doc_type, reasons in required_reasons.items()
    ]
    checklist.extend(
        ChecklistItem(doc_type=doc_type, required=False, reason='; '.join(reasons))
        for doc_type, reasons in optional_reasons.items()
        if doc_type not in required_reasons
    )
    checklist.sort(key=lambda item: item.doc_type.value)

    return Evaluation(
        required_checklist=checklist,
        validation_errors=validation_errors,
        computed_fields=computed_fields,
        notices=list(dict.fromkeys(notices))
    )
