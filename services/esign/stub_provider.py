"""
Stub E-Sign Provider

Deterministic in-process provider for development and tests. Envelope state
lives in a StubEnvelopeStore owned by the application (or a test), never in
module globals, so separate apps do not see each other's envelopes.

Webhooks are plain JSON with no signature:
    {"providerEnvelopeId": "...", "eventType": "...", "status": "COMPLETED", "eventId": "..."}
"""

import hashlib
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .base import ESignProvider
from .status import EnvelopeStatus
from .types import (
    EnvelopeDetails,
    EnvelopeDocument,
    ProviderEnvelope,
    ProviderEvent,
    Recipient,
    WebhookRequest,
    WebhookVerification,
)

logger = logging.getLogger(__name__)


@dataclass
class StubEnvelopeState:
    status: EnvelopeStatus
    recipients: List[Recipient] = field(default_factory=list)
    document: Optional[bytes] = field(default=None, repr=False)


class StubEnvelopeStore:
    """Thread-safe map of stub envelope id -> state."""

    def __init__(self):
        self._envelopes: Dict[str, StubEnvelopeState] = {}
        self._lock = threading.Lock()

    def put(self, provider_envelope_id: str, state: StubEnvelopeState) -> None:
        with self._lock:
            self._envelopes[provider_envelope_id] = state

    def get(self, provider_envelope_id: str) -> Optional[StubEnvelopeState]:
        with self._lock:
            return self._envelopes.get(provider_envelope_id)

    def set_status(self, provider_envelope_id: str, status: EnvelopeStatus) -> bool:
        with self._lock:
            state = self._envelopes.get(provider_envelope_id)
            if state is None:
                return False
            state.status = status
            return True

    def __len__(self):
        with self._lock:
            return len(self._envelopes)


class StubESignProvider(ESignProvider):
    """Stub provider; `auto_complete` creates envelopes directly in COMPLETED."""

    name = 'stub'

    def __init__(self, store: StubEnvelopeStore, auto_complete: bool = True):
        self.store = store
        self.auto_complete = auto_complete

    def create_envelope(self, org_id, deal_id, documents: List[EnvelopeDocument],
                        recipients: List[Recipient], request_id=None) -> ProviderEnvelope:
        provider_envelope_id = f"stub-{deal_id}-{uuid.uuid4()}"
        status = EnvelopeStatus.COMPLETED if self.auto_complete else EnvelopeStatus.SENT
        self.store.put(provider_envelope_id, StubEnvelopeState(
            status=status,
            recipients=list(recipients),
            document=documents[0].content if documents else None
        ))
        logger.info(f"Stub envelope {provider_envelope_id} created in {status.value}")
        return ProviderEnvelope(provider_envelope_id=provider_envelope_id, status=status)

    def get_envelope(self, provider_envelope_id: str) -> EnvelopeDetails:
        state = self.store.get(provider_envelope_id)
        if state is None:
            # Unknown to this process (e.g. after a restart)
            return EnvelopeDetails(status=EnvelopeStatus.SENT)

        signed_pdf = state.document if state.status is EnvelopeStatus.COMPLETED else None
        return EnvelopeDetails(status=state.status, recipients=list(state.recipients), signed_pdf=signed_pdf)

    def void_envelope(self, provider_envelope_id: str, reason: str) -> None:
        self.store.set_status(provider_envelope_id, EnvelopeStatus.VOIDED)

    def complete(self, provider_envelope_id: str) -> bool:
        """Mark a stub envelope signed by everyone."""
        return self.store.set_status(provider_envelope_id, EnvelopeStatus.COMPLETED)

    def verify_webhook(self, webhook: WebhookRequest) -> WebhookVerification:
        body = webhook.json()
        if not isinstance(body, dict):
            return WebhookVerification.reject("Body is not a JSON object")

        provider_envelope_id = body.get('providerEnvelopeId')
        event_type = body.get('eventType')
        raw_status = body.get('status')
        if not provider_envelope_id or not event_type or not raw_status:
            return WebhookVerification.reject("providerEnvelopeId, eventType and status are required")

        try:
            status = EnvelopeStatus(str(raw_status).upper())
        except ValueError:
            return WebhookVerification.reject(f"Unknown status: {raw_status}")

        # Without an eventId the body hash keeps replays deduplicated
        event_id = body.get('eventId') or hashlib.sha256(webhook.body).hexdigest()

        return WebhookVerification.accept(ProviderEvent(
            provider=self.name,
            event_type=str(event_type),
            status=status,
            provider_envelope_id=str(provider_envelope_id),
            provider_event_id=str(event_id),
            idempotency_key=f"stub:{event_id}",
            payload=body
        ))
