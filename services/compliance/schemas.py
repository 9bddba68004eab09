"""
Compliance Schema Validation

Validates rule-set and deal-snapshot payloads against the JSON schemas in
schema/. Two entry points per payload kind:

    errors = rules_json_errors(raw)      # list of messages, never raises
    config = parse_rules_json(raw)       # RulesConfig or ConfigurationError

The evaluator uses the non-raising form so malformed configuration is
skipped; the admin paths use the raising form so it is rejected.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import jsonschema

from .types import DealSnapshot, RulesConfig
from .exceptions import ConfigurationError, SnapshotValidationError

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).parent / 'schema'
RULESET_SCHEMA_FILE = 'ruleset.v1.json'
SNAPSHOT_SCHEMA_FILE = 'deal_snapshot.v1.json'


class SchemaRegistry:
    """Loads each schema file once and caches a validator for it."""

    _validators: Dict[str, jsonschema.Draft7Validator] = {}

    @classmethod
    def validator(cls, filename: str) -> jsonschema.Draft7Validator:
        if filename not in cls._validators:
            schema = json.loads((SCHEMA_DIR / filename).read_text())
            jsonschema.Draft7Validator.check_schema(schema)
            cls._validators[filename] = jsonschema.Draft7Validator(schema)
            logger.debug(f"Loaded schema: {filename}")
        return cls._validators[filename]


def _collect_errors(filename: str, raw: Any) -> List[str]:
    validator = SchemaRegistry.validator(filename)
    messages = []
    for error in sorted(validator.iter_errors(raw), key=lambda e: [str(p) for p in e.absolute_path]):
        path = '.'.join(str(p) for p in error.absolute_path)
        messages.append(f"{path}: {error.message}" if path else error.message)
    return messages


# =============================================================================
# RULE SETS
# =============================================================================

def rules_json_errors(raw: Any) -> List[str]:
    """Return schema messages for a raw rule set (empty if valid)."""
    return _collect_errors(RULESET_SCHEMA_FILE, raw)


def parse_rules_json(raw: Any) -> RulesConfig:
    """Validate and convert a raw rule set, raising ConfigurationError if invalid."""
    errors = rules_json_errors(raw)
    if errors:
        raise ConfigurationError("Rule set failed schema validation", errors=errors)
    return RulesConfig.from_dict(raw)


def normalize_rules_json(raw: Any) -> Dict[str, Any]:
    """
    Validate a raw rule set and fill in the defaulted sections.

    This is the shape persisted in ComplianceRuleSet.rules_json.
    """
    errors = rules_json_errors(raw)
    if errors:
        raise ConfigurationError("Rule set failed schema validation", errors=errors)

    normalized = dict(raw)
    normalized.setdefault('scenarios', [])
    normalized.setdefault('validations', [])
    normalized.setdefault('computedFields', {})
    normalized['scenarios'] = [
        {'when': {}, 'requiredDocuments': [], 'optionalDocuments': [], **scenario}
        for scenario in normalized['scenarios']
    ]
    normalized['validations'] = [
        {'severity': 'error', 'when': {}, **rule}
        for rule in normalized['validations']
    ]
    return normalized


# =============================================================================
# DEAL SNAPSHOTS
# =============================================================================

def parse_deal_snapshot(raw: Any) -> DealSnapshot:
    """Validate and convert a camelCase snapshot payload."""
    errors = _collect_errors(SNAPSHOT_SCHEMA_FILE, raw)
    if errors:
        raise SnapshotValidationError("Deal snapshot failed schema validation", errors=errors)
    return DealSnapshot.from_dict(raw)
