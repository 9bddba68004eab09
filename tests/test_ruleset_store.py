"""
RuleSet Store Tests

Covers publishing versions, predecessor bounding, overlap rejection,
active-set resolution and the starter rule sets.

Run with: python -m pytest tests/test_ruleset_store.py -v
"""

import pytest
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from models import db, AuditEvent, ComplianceRuleSet
from services.compliance import (
    ConfigurationError,
    EXAMPLE_RULES_NOTICE,
    RuleSetNotFoundError,
    RuleSetOverlapError,
    parse_deal_snapshot,
    ruleset_store,
)

ORG_ID = 'org-1'
OTHER_ORG_ID = 'org-2'

TRADE_IN_RULES = {
    'scenarios': [
        {'when': {'hasTradeIn': True}, 'requiredDocuments': ['TITLE_REG_APPLICATION'], 'notes': 'Trade-in'}
    ],
    'computedFields': {'suggestedTaxRate': 0.0625}
}


class TestPublishVersion:
    """Test publishing new rule-set versions."""

    def test_first_version(self, app):
        rule_set = ruleset_store.publish_version(ORG_ID, 'tx', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)

        assert rule_set.jurisdiction == 'TX'
        assert rule_set.version == 1
        assert rule_set.effective_to is None
        assert rule_set.not_legal_advice_notice == ruleset_store.RULE_SET_NOTICE
        assert rule_set.rules_json['validations'] == []

    def test_publish_writes_audit_event(self, app):
        rule_set = ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)

        event = AuditEvent.query.filter_by(entity_id=rule_set.id).one()
        assert event.event_type == AuditEvent.RULE_SET_PUBLISHED
        assert event.org_id == ORG_ID

    def test_successor_bounds_open_predecessor(self, app):
        first = ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)
        second = ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 7, 1), rules_json=TRADE_IN_RULES)

        assert second.version == 2
        assert first.effective_to == datetime(2026, 7, 1)
        assert second.effective_to is None

        superseded = AuditEvent.query.filter_by(
            entity_id=first.id, event_type=AuditEvent.RULE_SET_SUPERSEDED
        ).one()
        assert superseded.event_data['successor_id'] == second.id

    def test_overlap_with_bounded_version_rejected(self, app):
        ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1), datetime(2026, 6, 1),
                                      rules_json=TRADE_IN_RULES)

        with pytest.raises(RuleSetOverlapError):
            ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 3, 1), rules_json=TRADE_IN_RULES)

        assert ComplianceRuleSet.query.filter_by(org_id=ORG_ID).count() == 1

    def test_backdated_open_version_rejected(self, app):
        first = ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 6, 1), rules_json=TRADE_IN_RULES)

        with pytest.raises(RuleSetOverlapError):
            ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)

        assert db.session.get(ComplianceRuleSet, first.id).effective_to is None

    def test_adjacent_ranges_allowed(self, app):
        ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1), datetime(2026, 6, 1),
                                      rules_json=TRADE_IN_RULES)
        second = ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 6, 1), rules_json=TRADE_IN_RULES)
        assert second.version == 2

    def test_other_scopes_do_not_overlap(self, app):
        ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)
        other_org = ruleset_store.publish_version(OTHER_ORG_ID, 'TX', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)
        other_state = ruleset_store.publish_version(ORG_ID, 'CA', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)

        assert other_org.version == 1
        assert other_state.version == 1

    def test_empty_range_rejected(self, app):
        with pytest.raises(ConfigurationError):
            ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 6, 1), datetime(2026, 6, 1),
                                          rules_json=TRADE_IN_RULES)

    def test_invalid_rules_rejected(self, app):
        with pytest.raises(ConfigurationError) as exc_info:
            ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1),
                                          rules_json={'scenarios': [{'requiredDocuments': ['NOPE']}]})
        assert exc_info.value.errors
        assert ComplianceRuleSet.query.count() == 0

    def test_invalid_jurisdiction_rejected(self, app):
        with pytest.raises(ConfigurationError):
            ruleset_store.publish_version(ORG_ID, 'Texas', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)

    @pytest.mark.parametrize('jurisdiction', [12, ['TX'], {'code': 'TX'}])
    def test_non_string_jurisdiction_rejected(self, app, jurisdiction):
        with pytest.raises(ConfigurationError):
            ruleset_store.publish_version(ORG_ID, jurisdiction, datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)

    def test_copy_from_existing_version(self, app):
        source = ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)
        copy = ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 7, 1), copy_from_id=source.id)

        assert copy.rules_json == source.rules_json
        assert copy.metadata_json['copiedFromRuleSetId'] == source.id

    def test_copy_from_unknown_version(self, app):
        with pytest.raises(RuleSetNotFoundError):
            ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1), copy_from_id='missing')

    def test_without_rules_carries_latest_forward(self, app):
        ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)
        second = ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 7, 1))
        assert second.rules_json['computedFields'] == {'suggestedTaxRate': 0.0625}


class TestResolveActive:
    """Test active-set resolution by date and scope."""

    def test_resolves_by_date(self, app):
        first = ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)
        second = ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 7, 1), rules_json=TRADE_IN_RULES)

        assert ruleset_store.resolve_active(ORG_ID, 'TX', datetime(2025, 12, 31)) == []
        assert ruleset_store.resolve_active(ORG_ID, 'TX', datetime(2026, 3, 1)) == [first]
        # effective_to is exclusive
        assert ruleset_store.resolve_active(ORG_ID, 'TX', datetime(2026, 7, 1)) == [second]

    def test_platform_sets_come_before_org_sets(self, app):
        org_set = ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)
        platform_set = ruleset_store.publish_version(None, 'TX', datetime(2026, 2, 1), rules_json=TRADE_IN_RULES)

        active = ruleset_store.resolve_active(ORG_ID, 'tx', datetime(2026, 3, 1))
        assert active == [platform_set, org_set]

    def test_other_org_sets_excluded(self, app):
        ruleset_store.publish_version(OTHER_ORG_ID, 'TX', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)
        assert ruleset_store.resolve_active(ORG_ID, 'TX', datetime(2026, 3, 1)) == []

    def test_org_computed_fields_win(self, app, snapshot_data):
        ruleset_store.publish_version(None, 'TX', datetime(2026, 1, 1),
                                      rules_json={'computedFields': {'suggestedTaxRate': 0.0625}})
        ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1),
                                      rules_json={'computedFields': {'suggestedTaxRate': 0.07}})

        snapshot = parse_deal_snapshot(snapshot_data())
        evaluation = ruleset_store.evaluate_for_deal(ORG_ID, snapshot, as_of=datetime(2026, 3, 1))
        assert evaluation.computed_fields['suggestedTaxRate'] == 0.07


class TestQueries:
    """Test listing and fetching rule sets."""

    def test_get_rule_set_scoped_to_org(self, app):
        rule_set = ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)

        assert ruleset_store.get_rule_set(ORG_ID, rule_set.id) is rule_set
        with pytest.raises(RuleSetNotFoundError):
            ruleset_store.get_rule_set(OTHER_ORG_ID, rule_set.id)

    def test_platform_set_visible_to_every_org(self, app):
        rule_set = ruleset_store.publish_version(None, 'TX', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)
        assert ruleset_store.get_rule_set(OTHER_ORG_ID, rule_set.id).id == rule_set.id

    def test_list_filters(self, app):
        ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)
        ruleset_store.publish_version(ORG_ID, 'TX', datetime(2026, 7, 1), rules_json=TRADE_IN_RULES)
        ruleset_store.publish_version(ORG_ID, 'CA', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)
        ruleset_store.publish_version(OTHER_ORG_ID, 'TX', datetime(2026, 1, 1), rules_json=TRADE_IN_RULES)

        assert len(ruleset_store.list_rule_sets(ORG_ID)) == 3

        tx_sets = ruleset_store.list_rule_sets(ORG_ID, jurisdiction='TX')
        assert [r.version for r in tx_sets] == [2, 1]

        active = ruleset_store.list_rule_sets(ORG_ID, jurisdiction='TX', active_on=datetime(2026, 3, 1))
        assert [r.version for r in active] == [1]


class TestStarterRuleSets:
    """Test loading the starter rule sets shipped in compliance_rules/."""

    def test_seed_loads_each_jurisdiction_once(self, app):
        seeded = ruleset_store.seed_from_directory(PROJECT_ROOT / 'compliance_rules')
        assert sorted(r.jurisdiction for r in seeded) == ['CA', 'FL', 'TX']
        assert all(r.org_id is None for r in seeded)

        assert ruleset_store.seed_from_directory(PROJECT_ROOT / 'compliance_rules') == []
        assert ComplianceRuleSet.query.count() == 3

    def test_texas_finance_without_lienholder(self, app, snapshot_data):
        ruleset_store.seed_from_directory(PROJECT_ROOT / 'compliance_rules')
        snapshot = parse_deal_snapshot(snapshot_data(hasLienholder=False, hasTradeIn=True))

        evaluation = ruleset_store.evaluate_for_deal(ORG_ID, snapshot, as_of=datetime(2026, 3, 1))

        assert [issue.code for issue in evaluation.validation_errors] == ['TX_FINANCE_LIEN_REQUIRED']
        assert evaluation.computed_fields['suggestedTaxRate'] == 0.0625
        assert EXAMPLE_RULES_NOTICE in evaluation.notices
        required = [item.doc_type.value for item in evaluation.required_checklist if item.required]
        assert 'TITLE_REG_APPLICATION' in required
        assert 'WE_OWE' in required

    def test_california_out_of_state_warning(self, app, snapshot_data):
        ruleset_store.seed_from_directory(PROJECT_ROOT / 'compliance_rules')
        snapshot = parse_deal_snapshot(snapshot_data(jurisdiction='CA', buyerState='NV'))

        evaluation = ruleset_store.evaluate_for_deal(ORG_ID, snapshot, as_of=datetime(2026, 3, 1))

        assert [issue.code for issue in evaluation.validation_errors] == ['CA_OUT_OF_STATE_WARNING']
        assert not evaluation.has_blocking_errors
        optional = [item.doc_type.value for item in evaluation.required_checklist if not item.required]
        assert optional == ['POWER_OF_ATTORNEY']
