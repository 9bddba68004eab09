"""
Dropbox Sign Provider Tests

HTTP calls are patched at requests.request; no network access.

Run with: python -m pytest tests/test_dropboxsign_provider.py -v
"""

import json
import pytest
import requests
import sys
from pathlib import Path
from unittest.mock import Mock, patch

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from services.esign import (
    DropboxSignProvider,
    ESignError,
    EnvelopeStatus,
    ProviderAPIError,
    WebhookRequest,
    parse_recipients,
)
from services.esign.dropboxsign_provider import (
    WEBHOOK_ACK,
    compute_event_hash,
    map_event_status,
    map_signature_request_status,
)

API_KEY = 'test-api-key'
REQUEST_PATH = 'services.esign.dropboxsign_provider.requests.request'


def mock_response(status_code=200, body=None, content=b''):
    response = Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.text = json.dumps(body) if body is not None else ''
    response.content = content
    if body is None:
        response.json.side_effect = ValueError('No JSON')
    else:
        response.json.return_value = body
    return response


def signature_request(request_id='sr-123', **flags):
    body = {
        'signature_request_id': request_id,
        'is_complete': False,
        'is_declined': False,
        'is_canceled': False,
        'signatures': [
            {'signer_name': 'Jane Buyer', 'signer_email_address': 'jane@example.com',
             'order': 0, 'status_code': 'awaiting_signature'}
        ]
    }
    body.update(flags)
    return body


def webhook_payload(event_type, event_time='1760000000', request_id='sr-123', api_key=API_KEY):
    return {
        'event': {
            'event_type': event_type,
            'event_time': event_time,
            'event_hash': compute_event_hash(api_key, event_time, event_type)
        },
        'signature_request': {'signature_request_id': request_id}
    }


def form_webhook(payload):
    return WebhookRequest(body=b'', content_type='multipart/form-data', form={'json': json.dumps(payload)})


@pytest.fixture
def provider():
    return DropboxSignProvider(API_KEY, base_url='https://api.hellosign.com/v3', timeout=10)


class TestStatusMapping:
    """Test provider vocabulary to canonical status."""

    @pytest.mark.parametrize('flags,expected', [
        ({}, EnvelopeStatus.SENT),
        ({'is_complete': True}, EnvelopeStatus.COMPLETED),
        ({'is_declined': True}, EnvelopeStatus.DECLINED),
        ({'is_canceled': True}, EnvelopeStatus.VOIDED),
        ({'signatures': [{'status_code': 'signed'}, {'status_code': 'awaiting_signature'}]},
         EnvelopeStatus.PARTIALLY_SIGNED),
    ])
    def test_signature_request_flags(self, flags, expected):
        assert map_signature_request_status(signature_request(**flags)) == expected

    def test_missing_request_is_error(self):
        assert map_signature_request_status(None) == EnvelopeStatus.ERROR

    @pytest.mark.parametrize('event_type,expected', [
        ('signature_request_sent', EnvelopeStatus.SENT),
        ('signature_request_viewed', EnvelopeStatus.VIEWED),
        ('signature_request_signed', EnvelopeStatus.PARTIALLY_SIGNED),
        ('signature_request_all_signed', EnvelopeStatus.COMPLETED),
        ('signature_request_declined', EnvelopeStatus.DECLINED),
        ('signature_request_canceled', EnvelopeStatus.VOIDED),
    ])
    def test_event_types(self, event_type, expected):
        assert map_event_status(event_type) == expected

    def test_unmapped_event_is_error(self):
        assert map_event_status('signature_request_reassigned') == EnvelopeStatus.ERROR


class TestCreateEnvelope:
    """Test the send call."""

    def test_create_sends_ordered_signers(self, provider, documents):
        recipients = parse_recipients([
            {'role': 'dealer', 'name': 'Sam Manager', 'email': 'sam@example.com', 'order': 2},
            {'role': 'buyer', 'name': 'Jane Buyer', 'email': 'jane@example.com', 'order': 1},
        ])

        with patch(REQUEST_PATH) as mock_request:
            mock_request.return_value = mock_response(body={'signature_request': signature_request()})
            result = provider.create_envelope('org-1', 'deal-1', documents, recipients, request_id='req-123456')

        assert result.provider_envelope_id == 'sr-123'
        assert result.status == EnvelopeStatus.SENT

        args, kwargs = mock_request.call_args
        assert args == ('POST', 'https://api.hellosign.com/v3/signature_request/send')
        assert kwargs['auth'] == (API_KEY, '')
        assert kwargs['timeout'] == 20
        data = kwargs['data']
        assert data['signers[0][email_address]'] == 'jane@example.com'
        assert data['signers[1][email_address]'] == 'sam@example.com'
        assert data['test_mode'] == '1'
        assert data['metadata[request_id]'] == 'req-123456'
        assert kwargs['files'][0][0] == 'files[0]'

    def test_http_error_raises_provider_error(self, provider, documents, recipients):
        body = {'error': {'error_msg': 'Invalid signer email', 'error_name': 'bad_request'}}
        with patch(REQUEST_PATH, return_value=mock_response(400, body)):
            with pytest.raises(ProviderAPIError) as exc_info:
                provider.create_envelope('org-1', 'deal-1', documents, parse_recipients(recipients))

        error = exc_info.value
        assert str(error) == 'Invalid signer email'
        assert error.provider_status == 400
        assert error.status_code == 502
        assert error.retryable
        assert not error.ambiguous

    def test_timeout_is_ambiguous(self, provider, documents, recipients):
        with patch(REQUEST_PATH, side_effect=requests.exceptions.Timeout('read timed out')):
            with pytest.raises(ProviderAPIError) as exc_info:
                provider.create_envelope('org-1', 'deal-1', documents, parse_recipients(recipients))
        assert exc_info.value.ambiguous

    def test_connection_error(self, provider, documents, recipients):
        with patch(REQUEST_PATH, side_effect=requests.exceptions.ConnectionError('refused')):
            with pytest.raises(ProviderAPIError):
                provider.create_envelope('org-1', 'deal-1', documents, parse_recipients(recipients))

    def test_missing_signature_request(self, provider, documents, recipients):
        with patch(REQUEST_PATH, return_value=mock_response(body={'warnings': []})):
            with pytest.raises(ProviderAPIError):
                provider.create_envelope('org-1', 'deal-1', documents, parse_recipients(recipients))

    def test_missing_api_key(self, documents, recipients):
        provider = DropboxSignProvider('')
        with patch(REQUEST_PATH) as mock_request:
            with pytest.raises(ESignError) as exc_info:
                provider.create_envelope('org-1', 'deal-1', documents, parse_recipients(recipients))
        assert exc_info.value.status_code == 500
        mock_request.assert_not_called()


class TestEnvelopeLookup:
    """Test status, download and cancel calls."""

    def test_pending_status_does_not_download(self, provider):
        with patch(REQUEST_PATH) as mock_request:
            mock_request.return_value = mock_response(body={'signature_request': signature_request()})
            details = provider.get_envelope('sr-123')

        assert details.status == EnvelopeStatus.SENT
        assert details.signed_pdf is None
        assert details.recipients[0].email == 'jane@example.com'
        assert mock_request.call_count == 1

    def test_completed_status_downloads_pdf(self, provider):
        responses = [
            mock_response(body={'signature_request': signature_request(is_complete=True)}),
            mock_response(content=b'%PDF-signed'),
        ]
        with patch(REQUEST_PATH, side_effect=responses) as mock_request:
            details = provider.get_envelope('sr-123')

        assert details.status == EnvelopeStatus.COMPLETED
        assert details.signed_pdf == b'%PDF-signed'
        args, kwargs = mock_request.call_args
        assert args[1].endswith('signature_request/files/sr-123')
        assert kwargs['params'] == {'file_type': 'pdf'}

    def test_download_failure_returns_none(self, provider):
        responses = [
            mock_response(body={'signature_request': signature_request(is_complete=True)}),
            mock_response(409, {'error': {'error_msg': 'Files are still being processed'}}),
        ]
        with patch(REQUEST_PATH, side_effect=responses):
            details = provider.get_envelope('sr-123')

        assert details.status == EnvelopeStatus.COMPLETED
        assert details.signed_pdf is None

    def test_void_posts_cancel(self, provider):
        with patch(REQUEST_PATH, return_value=mock_response(body={})) as mock_request:
            provider.void_envelope('sr-123', 'Buyer walked away')

        args, kwargs = mock_request.call_args
        assert args == ('POST', 'https://api.hellosign.com/v3/signature_request/cancel/sr-123')
        assert kwargs['data'] == {'reason': 'Buyer walked away'}


class TestWebhookVerification:
    """Test event hash checks and event normalization."""

    def test_valid_event(self, provider):
        verification = provider.verify_webhook(form_webhook(webhook_payload('signature_request_all_signed')))

        assert verification.ok
        event = verification.event
        assert event.status == EnvelopeStatus.COMPLETED
        assert event.provider_envelope_id == 'sr-123'
        assert event.idempotency_key == 'dropboxsign:sr-123:signature_request_all_signed:1760000000'

    def test_json_body_accepted(self, provider):
        payload = webhook_payload('signature_request_viewed')
        webhook = WebhookRequest(body=json.dumps(payload).encode('utf-8'), content_type='application/json')
        assert provider.verify_webhook(webhook).ok

    def test_wrong_key_rejected(self, provider):
        payload = webhook_payload('signature_request_all_signed', api_key='someone-else')
        verification = provider.verify_webhook(form_webhook(payload))
        assert not verification.ok
        assert verification.reason == 'Event hash mismatch'

    def test_tampered_event_type_rejected(self, provider):
        payload = webhook_payload('signature_request_viewed')
        payload['event']['event_type'] = 'signature_request_all_signed'
        assert not provider.verify_webhook(form_webhook(payload)).ok

    def test_missing_hash_rejected(self, provider):
        payload = webhook_payload('signature_request_viewed')
        del payload['event']['event_hash']
        assert not provider.verify_webhook(form_webhook(payload)).ok

    def test_malformed_json_rejected(self, provider):
        webhook = WebhookRequest(body=b'', form={'json': '{not json'})
        assert not provider.verify_webhook(webhook).ok

    @pytest.mark.parametrize('event', ['x', ['signature_request_viewed'], 42])
    def test_non_object_event_rejected(self, provider, event):
        webhook = WebhookRequest(body=b'', form={'json': json.dumps({'event': event})})

        verification = provider.verify_webhook(webhook)
        assert not verification.ok
        assert verification.reason == 'Missing or malformed event object'

    @pytest.mark.parametrize('signature_request', ['abc', ['sr-123'], None])
    def test_signed_event_without_request_object_rejected(self, provider, signature_request):
        payload = webhook_payload('signature_request_viewed')
        payload['signature_request'] = signature_request

        verification = provider.verify_webhook(form_webhook(payload))
        assert not verification.ok
        assert verification.reason == 'Missing signature_request'

    def test_non_string_request_id_rejected(self, provider):
        payload = webhook_payload('signature_request_viewed')
        payload['signature_request'] = {'signature_request_id': {'id': 'sr-123'}}

        assert not provider.verify_webhook(form_webhook(payload)).ok

    def test_non_ascii_hash_rejected(self, provider):
        payload = webhook_payload('signature_request_viewed')
        payload['event']['event_hash'] = 'é' * 64

        verification = provider.verify_webhook(form_webhook(payload))
        assert not verification.ok
        assert verification.reason == 'Event hash mismatch'

    def test_unmapped_event_becomes_error(self, provider):
        verification = provider.verify_webhook(form_webhook(webhook_payload('signature_request_reassigned')))
        assert verification.ok
        assert verification.event.status == EnvelopeStatus.ERROR

    def test_ack_body(self, provider):
        assert provider.webhook_ack == WEBHOOK_ACK == 'Hello API Event Received'
