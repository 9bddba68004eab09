"""
E-Sign Status and Input Tests

Covers the monotonic transition rule and recipient/document validation.

Run with: python -m pytest tests/test_esign_types.py -v
"""

import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from services.esign import (
    EnvelopeDocument,
    EnvelopeStatus,
    Recipient,
    RecipientRole,
    RecipientValidationError,
    TERMINAL_STATUSES,
    parse_recipients,
    should_apply,
    validate_documents,
)
from services.esign.status import coerce_status

S = EnvelopeStatus


class TestTransitionRule:
    """Test which reported statuses replace the stored one."""

    @pytest.mark.parametrize('current,new', [
        (S.SENT, S.VIEWED),
        (S.SENT, S.PARTIALLY_SIGNED),
        (S.VIEWED, S.PARTIALLY_SIGNED),
        (S.SENT, S.COMPLETED),
        (S.PARTIALLY_SIGNED, S.DECLINED),
        (S.VIEWED, S.VOIDED),
        (S.SENT, S.ERROR),
    ])
    def test_forward_progress_applies(self, current, new):
        assert should_apply(current, new)

    @pytest.mark.parametrize('current,new', [
        (S.VIEWED, S.SENT),
        (S.PARTIALLY_SIGNED, S.VIEWED),
        (S.DECLINED, S.SENT),
        (S.VOIDED, S.PARTIALLY_SIGNED),
    ])
    def test_regression_ignored(self, current, new):
        assert not should_apply(current, new)

    @pytest.mark.parametrize('status', list(EnvelopeStatus))
    def test_same_status_is_not_a_change(self, status):
        assert not should_apply(status, status)

    @pytest.mark.parametrize('new', list(EnvelopeStatus))
    def test_completed_is_final(self, new):
        assert not should_apply(S.COMPLETED, new)

    def test_terminal_may_be_corrected_by_other_terminal(self):
        assert should_apply(S.ERROR, S.DECLINED)
        assert should_apply(S.VOIDED, S.COMPLETED)

    def test_accepts_string_values(self):
        assert should_apply('SENT', 'viewed')
        assert coerce_status(' completed ') is S.COMPLETED

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {S.COMPLETED, S.DECLINED, S.VOIDED, S.ERROR}
        assert S.DECLINED.is_terminal
        assert not S.PARTIALLY_SIGNED.is_terminal


class TestRecipientValidation:
    """Test recipient input checks."""

    def test_valid_recipients(self, recipients):
        parsed = parse_recipients(recipients)
        assert parsed[0] == Recipient(RecipientRole.BUYER, 'Jane Buyer', 'jane@example.com', 1)
        assert parsed[1].role == RecipientRole.DEALER

    def test_names_and_emails_are_trimmed(self):
        parsed = parse_recipients([{'role': 'seller', 'name': '  Al Seller ', 'email': ' al@example.com '}])
        assert parsed[0].name == 'Al Seller'
        assert parsed[0].email == 'al@example.com'
        assert parsed[0].order == 1

    def test_recipient_objects_accepted(self):
        recipient = Recipient(RecipientRole.CO_BUYER, 'Co Buyer', 'co@example.com', 2)
        assert parse_recipients([recipient]) == [recipient]

    @pytest.mark.parametrize('raw', [None, [], 'jane@example.com'])
    def test_at_least_one_recipient(self, raw):
        with pytest.raises(RecipientValidationError):
            parse_recipients(raw)

    def test_each_problem_reported(self):
        with pytest.raises(RecipientValidationError) as exc_info:
            parse_recipients([
                {'role': 'notary', 'name': 'J', 'email': 'not-an-email', 'order': 0},
            ])
        errors = exc_info.value.errors
        assert len(errors) == 4
        assert any('.role' in e for e in errors)
        assert any('.email' in e for e in errors)

    def test_order_must_be_integer(self):
        for order in (True, '1', 1.5, 11):
            with pytest.raises(RecipientValidationError):
                parse_recipients([{'role': 'buyer', 'name': 'Jane Buyer', 'email': 'jane@example.com',
                                   'order': order}])

    def test_duplicate_signing_order_rejected(self, recipients):
        recipients[1]['order'] = 1
        with pytest.raises(RecipientValidationError) as exc_info:
            parse_recipients(recipients)
        assert 'signing order must be unique' in exc_info.value.errors[0]

    def test_long_name_rejected(self):
        with pytest.raises(RecipientValidationError):
            parse_recipients([{'role': 'buyer', 'name': 'x' * 121, 'email': 'jane@example.com'}])


class TestDocumentValidation:
    """Test document input checks."""

    def test_documents_required(self):
        with pytest.raises(RecipientValidationError):
            validate_documents([])

    def test_empty_document_rejected(self):
        with pytest.raises(RecipientValidationError) as exc_info:
            validate_documents([EnvelopeDocument('a.pdf', b'%PDF'), EnvelopeDocument('b.pdf', b'')])
        assert exc_info.value.errors == ['documents[1]: content is empty']

    def test_document_summary(self, documents):
        summary = documents[0].to_dict()
        assert summary['name'] == 'deal-packet.pdf'
        assert summary['size'] == len(documents[0].content)
        assert len(summary['sha256']) == 64
