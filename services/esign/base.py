"""
E-Sign Provider Interface

Every provider adapter implements these four operations. Adapters speak
the canonical status vocabulary at this boundary; mapping from the
provider's own vocabulary happens inside the adapter.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from .types import (
    EnvelopeDetails,
    EnvelopeDocument,
    ProviderEnvelope,
    Recipient,
    WebhookRequest,
    WebhookVerification,
)


class ESignProvider(ABC):
    """Capability contract for a signing service."""

    name: str = ''

    # Literal acknowledgment body for webhook deliveries; None means JSON
    webhook_ack: Optional[str] = None

    @abstractmethod
    def create_envelope(self, org_id: str, deal_id: str, documents: List[EnvelopeDocument],
                        recipients: List[Recipient], request_id: str = None) -> ProviderEnvelope:
        """Upload documents and signers; return the provider id and initial status."""

    @abstractmethod
    def get_envelope(self, provider_envelope_id: str) -> EnvelopeDetails:
        """Fetch current status (and the signed PDF once completed)."""

    @abstractmethod
    def void_envelope(self, provider_envelope_id: str, reason: str) -> None:
        """Cancel an outstanding envelope."""

    @abstractmethod
    def verify_webhook(self, webhook: WebhookRequest) -> WebhookVerification:
        """
        Authenticate and normalize an inbound webhook.

        Never raises for a bad payload or signature; returns a rejection.
        """

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.name}>'
