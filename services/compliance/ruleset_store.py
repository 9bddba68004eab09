# services/compliance/ruleset_store.py
"""
RuleSet Store

Persistence for versioned, jurisdiction-scoped compliance rule sets.
Read paths are plain range queries; the publish path runs its overlap
check and insert inside one transaction.

Usage:
    rule_set = publish_version(org_id, 'TX', datetime(2026, 1, 1), rules_json=raw)
    active = resolve_active(org_id, 'TX', datetime.utcnow())
    evaluation = evaluate_for_deal(org_id, snapshot)
"""

import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from sqlalchemy.exc import IntegrityError

from models import db, ComplianceRuleSet
from services import audit_service
from .evaluator import evaluate_compliance
from .exceptions import ConfigurationError, RuleSetNotFoundError, RuleSetOverlapError
from .schemas import normalize_rules_json
from .types import DealSnapshot, Evaluation

logger = logging.getLogger(__name__)

RULE_SET_NOTICE = "Not legal advice. Validate templates and rules with licensed counsel."
STARTER_EFFECTIVE_FROM = datetime(2025, 1, 1)
JURISDICTION_PATTERN = re.compile(r'^[A-Z]{2}$')

EMPTY_RULES = {'scenarios': [], 'validations': [], 'computedFields': {}}


def normalize_jurisdiction(value: str) -> str:
    """Upper-case and check a two-letter jurisdiction code."""
    code = value.strip().upper() if isinstance(value, str) else ''
    if not JURISDICTION_PATTERN.match(code):
        raise ConfigurationError("Jurisdiction must be a 2-letter state code.",
                                 errors=[f"jurisdiction: {value!r}"])
    return code


def _as_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def _ranges_overlap(start_a, end_a, start_b, end_b) -> bool:
    """Half-open [start, end) overlap; None end means open-ended."""
    return (end_b is None or start_a < end_b) and (end_a is None or start_b < end_a)


# =============================================================================
# QUERIES
# =============================================================================

def _scope_query(org_id: Optional[str], jurisdiction: str):
    return ComplianceRuleSet.query.filter(
        ComplianceRuleSet.jurisdiction == jurisdiction,
        db.or_(ComplianceRuleSet.org_id == org_id, ComplianceRuleSet.org_id.is_(None))
    )


def resolve_active(org_id: Optional[str], jurisdiction: str, as_of: datetime) -> List[ComplianceRuleSet]:
    """
    Return the rule sets in effect for a jurisdiction on a date.

    Platform-wide sets come first and the org's own sets last, so org
    computed fields win under last-wins merging.
    """
    jurisdiction = normalize_jurisdiction(jurisdiction)
    as_of = _as_datetime(as_of)

    active = _scope_query(org_id, jurisdiction).filter(
        ComplianceRuleSet.effective_from <= as_of,
        db.or_(ComplianceRuleSet.effective_to.is_(None), ComplianceRuleSet.effective_to > as_of)
    ).order_by(ComplianceRuleSet.effective_from, ComplianceRuleSet.version).all()

    platform = [r for r in active if r.org_id is None]
    own = [r for r in active if r.org_id is not None]
    return platform + own


def list_rule_sets(org_id: str, jurisdiction: str = None, active_on: datetime = None) -> List[ComplianceRuleSet]:
    """List the org's and platform-wide rule sets, newest version first."""
    query = ComplianceRuleSet.query.filter(
        db.or_(ComplianceRuleSet.org_id == org_id, ComplianceRuleSet.org_id.is_(None))
    )
    if jurisdiction:
        query = query.filter(ComplianceRuleSet.jurisdiction == normalize_jurisdiction(jurisdiction))

    rule_sets = query.order_by(
        ComplianceRuleSet.jurisdiction,
        ComplianceRuleSet.org_id,
        ComplianceRuleSet.version.desc()
    ).all()

    if active_on is not None:
        active_on = _as_datetime(active_on)
        rule_sets = [r for r in rule_sets if r.is_active_on(active_on)]
    return rule_sets


def get_rule_set(org_id: str, rule_set_id: str) -> ComplianceRuleSet:
    """Fetch one of the org's (or a platform-wide) rule sets."""
    rule_set = ComplianceRuleSet.query.filter(
        ComplianceRuleSet.id == rule_set_id,
        db.or_(ComplianceRuleSet.org_id == org_id, ComplianceRuleSet.org_id.is_(None))
    ).first()
    if not rule_set:
        raise RuleSetNotFoundError("Rule set not found.")
    return rule_set


def evaluate_for_deal(org_id: str, snapshot: DealSnapshot, as_of: datetime = None) -> Evaluation:
    """Resolve the active rule sets for the deal's jurisdiction and evaluate."""
    rule_sets = resolve_active(org_id, snapshot.jurisdiction, as_of or datetime.utcnow())
    return evaluate_compliance(snapshot, [r.rules_json for r in rule_sets])


# =============================================================================
# PUBLISHING
# =============================================================================

def publish_version(org_id: Optional[str], jurisdiction: str, effective_from, effective_to=None,
                    rules_json: Dict[str, Any] = None, copy_from_id: str = None,
                    metadata: Dict[str, Any] = None) -> ComplianceRuleSet:
    """
    Publish a new rule-set version for (org, jurisdiction).

    An open-ended predecessor that starts before the new version is bounded
    at the new effective_from. Any other overlap with an existing version in
    the same (org, jurisdiction) raises RuleSetOverlapError and nothing is
    written.

    Raises:
        ConfigurationError: rules fail schema validation or the range is empty
        RuleSetOverlapError: the range collides with another version
        RuleSetNotFoundError: copy_from_id does not exist in scope
    """
    jurisdiction = normalize_jurisdiction(jurisdiction)
    effective_from = _as_datetime(effective_from)
    effective_to = _as_datetime(effective_to)

    if effective_to is not None and effective_to <= effective_from:
        raise ConfigurationError("effectiveTo must be after effectiveFrom.",
                                 errors=["effectiveTo: must be after effectiveFrom"])

    copied_from = get_rule_set(org_id, copy_from_id) if copy_from_id else None
    if rules_json is None:
        if copied_from is not None:
            rules_json = copied_from.rules_json
        else:
            latest = _scope_query(org_id, jurisdiction).order_by(
                ComplianceRuleSet.org_id.is_(None), ComplianceRuleSet.version.desc()
            ).first()
            rules_json = latest.rules_json if latest else EMPTY_RULES
    normalized = normalize_rules_json(rules_json)

    try:
        # Lock the scope's versions (no-op on SQLite, which serializes writers)
        existing = ComplianceRuleSet.query.filter_by(
            org_id=org_id, jurisdiction=jurisdiction
        ).order_by(ComplianceRuleSet.version).with_for_update().all()

        superseded = None
        for candidate in existing:
            if candidate.effective_to is None and candidate.effective_from < effective_from:
                candidate.effective_to = effective_from
                superseded = candidate

        for other in existing:
            if _ranges_overlap(effective_from, effective_to, other.effective_from, other.effective_to):
                raise RuleSetOverlapError(
                    f"Effective range overlaps {jurisdiction} v{other.version} "
                    f"({other.effective_from.date()} - "
                    f"{other.effective_to.date() if other.effective_to else 'open'})."
                )

        rule_set = ComplianceRuleSet(
            org_id=org_id,
            jurisdiction=jurisdiction,
            version=max((r.version for r in existing), default=0) + 1,
            effective_from=effective_from,
            effective_to=effective_to,
            rules_json=normalized,
            metadata_json={
                'copiedFromRuleSetId': copied_from.id if copied_from else None,
                **(metadata or {})
            },
            not_legal_advice_notice=RULE_SET_NOTICE
        )
        db.session.add(rule_set)
        db.session.flush()

        audit_service.log_rule_set_published(rule_set)
        if superseded is not None:
            audit_service.log_rule_set_superseded(superseded, rule_set)
        db.session.commit()

    except RuleSetOverlapError:
        db.session.rollback()
        raise
    except IntegrityError:
        # A concurrent publish took the same version number
        db.session.rollback()
        raise RuleSetOverlapError(
            f"Another {jurisdiction} rule set version was published concurrently; retry."
        )

    logger.info(f"Published rule set {jurisdiction} v{rule_set.version} for org {org_id or 'platform'}")
    return rule_set


# =============================================================================
# STARTER RULE SETS
# =============================================================================

def seed_from_directory(directory: Path) -> List[ComplianceRuleSet]:
    """
    Load platform-wide starter rule sets from *.yml files.

    Each file holds `jurisdiction` and `rules`; jurisdictions that already
    have a platform-wide set are skipped.
    """
    seeded = []
    for path in sorted(Path(directory).glob('*.yml')):
        raw = yaml.safe_load(path.read_text()) or {}
        jurisdiction = normalize_jurisdiction(raw.get('jurisdiction', ''))

        exists = ComplianceRuleSet.query.filter_by(org_id=None, jurisdiction=jurisdiction).first()
        if exists:
            logger.info(f"Starter rule set for {jurisdiction} already present, skipping {path.name}")
            continue

        seeded.append(publish_version(
            None,
            jurisdiction,
            raw.get('effective_from', STARTER_EFFECTIVE_FROM),
            rules_json=raw.get('rules', EMPTY_RULES),
            metadata={'source': 'Illustrative starter set', 'file': path.name}
        ))
    return seeded
