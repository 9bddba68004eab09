"""
Dropbox Sign Provider

Thin wrapper around the Dropbox Sign (formerly HelloSign) v3 API.
Handles authentication, multipart uploads, status mapping and webhook
signature checks.

Endpoints used:
    POST signature_request/send          create + send
    GET  signature_request/<id>          status
    GET  signature_request/files/<id>    signed PDF
    POST signature_request/cancel/<id>   void

Webhooks arrive as multipart form posts with the event in a `json` field.
Their `event_hash` is HMAC-SHA256(api_key, event_time + event_type).
"""

import hashlib
import hmac
import json
import logging
from typing import Any, Dict, List, Optional

import requests

from .base import ESignProvider
from .exceptions import ESignError, ProviderAPIError
from .status import EnvelopeStatus
from .types import (
    EnvelopeDetails,
    EnvelopeDocument,
    ProviderEnvelope,
    ProviderEvent,
    Recipient,
    RecipientRole,
    WebhookRequest,
    WebhookVerification,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://api.hellosign.com/v3'
DEFAULT_TIMEOUT = 30

# Literal body Dropbox Sign expects before it stops retrying a delivery
WEBHOOK_ACK = 'Hello API Event Received'

# Webhook event type -> canonical status; anything else is ERROR
EVENT_STATUS_MAP = {
    'signature_request_sent': EnvelopeStatus.SENT,
    'signature_request_viewed': EnvelopeStatus.VIEWED,
    'signature_request_signed': EnvelopeStatus.PARTIALLY_SIGNED,
    'signature_request_all_signed': EnvelopeStatus.COMPLETED,
    'signature_request_declined': EnvelopeStatus.DECLINED,
    'signature_request_canceled': EnvelopeStatus.VOIDED,
}


def map_signature_request_status(signature_request: Optional[Dict[str, Any]]) -> EnvelopeStatus:
    """Map a signature_request object's flags to a canonical status."""
    if not signature_request:
        return EnvelopeStatus.ERROR
    if signature_request.get('is_canceled'):
        return EnvelopeStatus.VOIDED
    if signature_request.get('is_declined'):
        return EnvelopeStatus.DECLINED
    if signature_request.get('is_complete'):
        return EnvelopeStatus.COMPLETED

    signatures = signature_request.get('signatures') or []
    if any(s.get('status_code') == 'signed' for s in signatures):
        return EnvelopeStatus.PARTIALLY_SIGNED
    return EnvelopeStatus.SENT


def map_event_status(event_type: str) -> EnvelopeStatus:
    return EVENT_STATUS_MAP.get(event_type, EnvelopeStatus.ERROR)


def compute_event_hash(api_key: str, event_time: str, event_type: str) -> str:
    return hmac.new(
        api_key.encode('utf-8'),
        f"{event_time}{event_type}".encode('utf-8'),
        hashlib.sha256
    ).hexdigest()


class DropboxSignProvider(ESignProvider):
    """
    Client for Dropbox Sign signature requests.

    Provides methods for:
        - Sending documents for signature (ordered signers, text tags)
        - Polling status and fetching the signed PDF
        - Cancelling outstanding requests
        - Verifying webhook event hashes
    """

    name = 'dropboxsign'
    webhook_ack = WEBHOOK_ACK

    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, test_mode: bool = True,
                 timeout: float = DEFAULT_TIMEOUT):
        self.api_key = api_key or ''
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip('/')
        self.test_mode = test_mode
        self.timeout = timeout

    # =========================================================================
    # HTTP
    # =========================================================================

    def _auth(self):
        if not self.api_key:
            raise ESignError("Dropbox Sign API key is not configured.", status_code=500)
        # Basic auth with the API key as username and an empty password
        return (self.api_key, '')

    def _request(self, method: str, path: str, action: str, timeout: float = None, **kwargs) -> requests.Response:
        """Send a request, raising ProviderAPIError on transport or HTTP failure."""
        url = f"{self.base_url}/{path}"
        try:
            response = requests.request(
                method,
                url,
                auth=self._auth(),
                timeout=timeout or self.timeout,
                **kwargs
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Dropbox Sign {action} timed out: {e}")
            raise ProviderAPIError(f"Dropbox Sign {action} timed out.", ambiguous=True)
        except requests.exceptions.RequestException as e:
            logger.error(f"Dropbox Sign {action} failed: {e}")
            raise ProviderAPIError(f"Dropbox Sign {action} failed: {e}")

        if not response.ok:
            error_body = response.text
            logger.error(f"Dropbox Sign {action} failed with HTTP {response.status_code}")
            logger.error(f"Response body: {error_body}")
            raise ProviderAPIError(
                self._error_message(response) or f"Dropbox Sign {action} failed.",
                provider_status=response.status_code,
                response_body=error_body
            )
        return response

    @staticmethod
    def _error_message(response: requests.Response) -> Optional[str]:
        try:
            return (response.json().get('error') or {}).get('error_msg')
        except ValueError:
            return None

    def _signature_request(self, response: requests.Response, action: str) -> Dict[str, Any]:
        try:
            signature_request = response.json().get('signature_request')
        except ValueError:
            signature_request = None
        if not signature_request or not signature_request.get('signature_request_id'):
            raise ProviderAPIError(
                f"Dropbox Sign {action} returned no signature request.",
                provider_status=response.status_code,
                response_body=response.text
            )
        return signature_request

    # =========================================================================
    # PROVIDER OPERATIONS
    # =========================================================================

    def create_envelope(self, org_id, deal_id, documents: List[EnvelopeDocument],
                        recipients: List[Recipient], request_id=None) -> ProviderEnvelope:
        data = {
            'title': f"Deal {deal_id} Documents",
            'subject': f"Deal packet for {deal_id}",
            'message': "Please review and sign.",
            'test_mode': '1' if self.test_mode else '0',
            'use_text_tags': '1',
        }
        if request_id:
            data['metadata[request_id]'] = request_id

        for index, recipient in enumerate(sorted(recipients, key=lambda r: r.order)):
            data[f'signers[{index}][name]'] = recipient.name
            data[f'signers[{index}][email_address]'] = recipient.email
            data[f'signers[{index}][order]'] = str(recipient.order)

        files = [
            (f'files[{index}]', (document.name, document.content, document.content_type))
            for index, document in enumerate(documents)
        ]

        response = self._request(
            'POST', 'signature_request/send', 'create',
            timeout=self.timeout * 2,
            data=data,
            files=files
        )
        signature_request = self._signature_request(response, 'create')

        provider_envelope_id = signature_request['signature_request_id']
        status = map_signature_request_status(signature_request)
        logger.info(f"Dropbox Sign request {provider_envelope_id} created for deal {deal_id}")
        return ProviderEnvelope(provider_envelope_id=provider_envelope_id, status=status)

    def get_envelope(self, provider_envelope_id: str) -> EnvelopeDetails:
        response = self._request('GET', f'signature_request/{provider_envelope_id}', 'status lookup')
        signature_request = self._signature_request(response, 'status lookup')

        status = map_signature_request_status(signature_request)
        recipients = [
            Recipient(
                role=RecipientRole.BUYER,
                name=signature.get('signer_name') or 'Signer',
                email=signature.get('signer_email_address') or '',
                order=signature.get('order') or 1
            )
            for signature in signature_request.get('signatures') or []
        ]

        if status is not EnvelopeStatus.COMPLETED:
            return EnvelopeDetails(status=status, recipients=recipients)

        return EnvelopeDetails(
            status=status,
            recipients=recipients,
            signed_pdf=self.download_signed_pdf(provider_envelope_id)
        )

    def download_signed_pdf(self, provider_envelope_id: str) -> Optional[bytes]:
        """Fetch the combined signed PDF, or None if the provider has not produced it yet."""
        try:
            response = self._request(
                'GET', f'signature_request/files/{provider_envelope_id}', 'file download',
                timeout=self.timeout * 2,
                params={'file_type': 'pdf'}
            )
        except ProviderAPIError as e:
            logger.warning(f"Signed PDF for {provider_envelope_id} not available: {e}")
            return None
        return response.content

    def void_envelope(self, provider_envelope_id: str, reason: str) -> None:
        self._request(
            'POST', f'signature_request/cancel/{provider_envelope_id}', 'cancel',
            data={'reason': reason}
        )
        logger.info(f"Dropbox Sign request {provider_envelope_id} cancelled")

    # =========================================================================
    # WEBHOOKS
    # =========================================================================

    def _webhook_payload(self, webhook: WebhookRequest) -> Optional[Dict[str, Any]]:
        raw = webhook.form.get('json')
        if raw is not None:
            try:
                payload = json.loads(raw)
            except ValueError:
                return None
        else:
            payload = webhook.json()
        return payload if isinstance(payload, dict) else None

    def verify_webhook(self, webhook: WebhookRequest) -> WebhookVerification:
        if not self.api_key:
            return WebhookVerification.reject("API key not configured")

        payload = self._webhook_payload(webhook)
        if payload is None:
            return WebhookVerification.reject("Missing or malformed json payload")

        event = payload.get('event')
        if not isinstance(event, dict):
            return WebhookVerification.reject("Missing or malformed event object")
        event_type = str(event.get('event_type') or '')
        event_time = str(event.get('event_time') or '')
        event_hash = str(event.get('event_hash') or '')
        if not event_type or not event_time or not event_hash:
            return WebhookVerification.reject("Missing event_type, event_time or event_hash")

        expected = compute_event_hash(self.api_key, event_time, event_type)
        if not hmac.compare_digest(expected.encode('utf-8'), event_hash.encode('utf-8')):
            return WebhookVerification.reject("Event hash mismatch")

        signature_request = payload.get('signature_request')
        if not isinstance(signature_request, dict):
            return WebhookVerification.reject("Missing signature_request")
        provider_envelope_id = signature_request.get('signature_request_id')
        if not provider_envelope_id or not isinstance(provider_envelope_id, str):
            return WebhookVerification.reject("Missing signature_request_id")

        provider_event_id = f"{provider_envelope_id}:{event_type}:{event_time}"
        return WebhookVerification.accept(ProviderEvent(
            provider=self.name,
            event_type=event_type,
            status=map_event_status(event_type),
            provider_envelope_id=provider_envelope_id,
            provider_event_id=provider_event_id,
            idempotency_key=f"{self.name}:{provider_event_id}",
            payload=payload
        ))
