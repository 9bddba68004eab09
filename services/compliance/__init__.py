"""
Deal Document Compliance

Decides which legal documents a deal requires and which data problems block
generation, from versioned jurisdiction-scoped rule sets.

Usage:
    from services.compliance import parse_deal_snapshot, evaluate_compliance, ruleset_store

    snapshot = parse_deal_snapshot(request_json['dealSnapshot'])
    evaluation = ruleset_store.evaluate_for_deal(org_id, snapshot)

    # Or, with rule sets already in hand (pure, no I/O)
    evaluation = evaluate_compliance(snapshot, [rules_a, rules_b])
"""

from .types import (
    DealType,
    DocumentType,
    CustomerInfo,
    VehicleInfo,
    DealerInfo,
    DealSnapshot,
    WhenClause,
    Scenario,
    ValidationRule,
    RulesConfig,
    ChecklistItem,
    ValidationIssue,
    Evaluation
)

from .exceptions import (
    ComplianceError,
    ConfigurationError,
    SnapshotValidationError,
    RuleSetOverlapError,
    RuleSetNotFoundError
)

from .schemas import SchemaRegistry, rules_json_errors, parse_rules_json, normalize_rules_json, parse_deal_snapshot
from .evaluator import evaluate_compliance, when_matches, NOT_LEGAL_ADVICE_NOTICE, EXAMPLE_RULES_NOTICE
from . import ruleset_store

__all__ = [
    # Types
    'DealType',
    'DocumentType',
    'CustomerInfo',
    'VehicleInfo',
    'DealerInfo',
    'DealSnapshot',
    'WhenClause',
    'Scenario',
    'ValidationRule',
    'RulesConfig',
    'ChecklistItem',
    'ValidationIssue',
    'Evaluation',

    # Exceptions
    'ComplianceError',
    'ConfigurationError',
    'SnapshotValidationError',
    'RuleSetOverlapError',
    'RuleSetNotFoundError',

    # Validation
    'SchemaRegistry',
    'rules_json_errors',
    'parse_rules_json',
    'normalize_rules_json',
    'parse_deal_snapshot',

    # Evaluation
    'evaluate_compliance',
    'when_matches',
    'NOT_LEGAL_ADVICE_NOTICE',
    'EXAMPLE_RULES_NOTICE',

    # Store
    'ruleset_store',
]
