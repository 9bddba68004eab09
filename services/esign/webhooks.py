"""
Webhook Ingress

The untrusted boundary for provider callbacks: verify, then hand the
normalized event to the lifecycle manager, then acknowledge in the form
the provider's retry logic expects.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .exceptions import UnsupportedProviderError
from .lifecycle import EnvelopeLifecycleManager
from .provider import parse_provider_name
from .types import WebhookRequest

logger = logging.getLogger(__name__)

INVALID_SIGNATURE_BODY = 'Invalid signature'


@dataclass
class WebhookResponse:
    """Transport-neutral response; `text` wins over `json_body` when set."""
    status_code: int
    text: Optional[str] = None
    json_body: Dict[str, Any] = field(default_factory=dict)


class WebhookIngress:

    def __init__(self, manager: EnvelopeLifecycleManager):
        self.manager = manager

    def handle(self, provider_name: str, webhook: WebhookRequest) -> WebhookResponse:
        """
        Process one delivery.

        Unknown provider -> 404. Failed verification -> 401 with a plain-text
        body and no state change. Otherwise the event is applied (or found to
        be a duplicate) and acknowledged with 200.
        """
        try:
            provider = self.manager.provider(parse_provider_name(provider_name).value)
        except UnsupportedProviderError:
            logger.warning(f"Webhook for unknown provider {provider_name!r}")
            return WebhookResponse(404, json_body={'success': False, 'error': 'Unknown provider'})

        verification = provider.verify_webhook(webhook)
        if not verification.ok:
            logger.warning(f"Rejected {provider.name} webhook: {verification.reason}")
            return WebhookResponse(401, text=INVALID_SIGNATURE_BODY)

        event = verification.event
        outcome = self.manager.apply_webhook_event(event)
        logger.info(f"{provider.name} webhook {event.event_type} -> {outcome}")

        if provider.webhook_ack is not None:
            return WebhookResponse(200, text=provider.webhook_ack)
        return WebhookResponse(200, json_body={
            'received': True,
            'outcome': outcome,
            'status': event.status.value
        })
