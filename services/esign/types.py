"""
E-Sign Type Definitions

Dataclasses exchanged between the lifecycle manager, the webhook ingress and
provider adapters. Recipient and document input validation lives here too,
so every caller of create goes through the same checks.
"""

import hashlib
import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import RecipientValidationError
from .status import EnvelopeStatus

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 120
MAX_SIGNING_ORDER = 10


class RecipientRole(Enum):
    BUYER = "buyer"
    CO_BUYER = "co_buyer"
    SELLER = "seller"
    DEALER = "dealer"


# =============================================================================
# ENVELOPE INPUT
# =============================================================================

@dataclass(frozen=True)
class Recipient:
    """A signer; `order` is the required signing sequence (1 = first)."""
    role: RecipientRole
    name: str
    email: str
    order: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'role': self.role.value,
            'name': self.name,
            'email': self.email,
            'order': self.order
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Recipient':
        return cls(
            role=RecipientRole(data['role']),
            name=data['name'],
            email=data['email'],
            order=data.get('order', 1)
        )


@dataclass(frozen=True)
class EnvelopeDocument:
    """Signable document bytes (normally a rendered PDF)."""
    name: str
    content: bytes = field(repr=False)
    content_type: str = 'application/pdf'

    @property
    def sha256(self) -> str:
        return hashlib.sha256(self.content).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        """Persisted summary; the bytes themselves are not stored on the envelope."""
        return {
            'name': self.name,
            'sha256': self.sha256,
            'size': len(self.content)
        }


def parse_recipients(raw: Any) -> List[Recipient]:
    """
    Validate recipient input (dicts or Recipient objects).

    Raises:
        RecipientValidationError: with one message per problem
    """
    if not isinstance(raw, (list, tuple)) or not raw:
        raise RecipientValidationError("At least one recipient is required.",
                                       errors=["recipients: at least one recipient is required"])

    errors = []
    recipients = []
    for index, item in enumerate(raw):
        prefix = f"recipients[{index}]"
        if isinstance(item, Recipient):
            item = item.to_dict()
        if not isinstance(item, dict):
            errors.append(f"{prefix}: must be an object")
            continue

        role = item.get('role')
        name = (item.get('name') or '').strip() if isinstance(item.get('name'), str) else ''
        email = (item.get('email') or '').strip() if isinstance(item.get('email'), str) else ''
        order = item.get('order', 1)

        item_errors = []
        if role not in {r.value for r in RecipientRole}:
            item_errors.append(f"{prefix}.role: must be one of buyer, co_buyer, seller, dealer")
        if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
            item_errors.append(f"{prefix}.name: must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters")
        if not EMAIL_PATTERN.match(email):
            item_errors.append(f"{prefix}.email: must be a valid email address")
        if isinstance(order, bool) or not isinstance(order, int) or not 1 <= order <= MAX_SIGNING_ORDER:
            item_errors.append(f"{prefix}.order: must be an integer from 1 to {MAX_SIGNING_ORDER}")

        if item_errors:
            errors.extend(item_errors)
            continue
        recipients.append(Recipient(role=RecipientRole(role), name=name, email=email, order=order))

    orders = [r.order for r in recipients]
    if len(orders) != len(set(orders)):
        errors.append("recipients: signing order must be unique per recipient")

    if errors:
        raise RecipientValidationError("Invalid recipients.", errors=errors)
    return recipients


def validate_documents(documents: List[EnvelopeDocument]) -> List[EnvelopeDocument]:
    """At least one document, none empty."""
    if not documents:
        raise RecipientValidationError("At least one document is required.",
                                       errors=["documents: at least one document is required"])
    errors = [
        f"documents[{index}]: content is empty"
        for index, document in enumerate(documents)
        if not document.content
    ]
    if errors:
        raise RecipientValidationError("Invalid documents.", errors=errors)
    return list(documents)


# =============================================================================
# PROVIDER RESULTS
# =============================================================================

@dataclass
class ProviderEnvelope:
    """What a provider reports synchronously on create."""
    provider_envelope_id: str
    status: EnvelopeStatus


@dataclass
class EnvelopeDetails:
    """Current provider-side state; signed_pdf is set only once COMPLETED."""
    status: EnvelopeStatus
    recipients: List[Recipient] = field(default_factory=list)
    signed_pdf: Optional[bytes] = field(default=None, repr=False)


@dataclass(frozen=True)
class ProviderEvent:
    """A verified webhook event, normalized to the canonical vocabulary."""
    provider: str
    event_type: str
    status: EnvelopeStatus
    provider_envelope_id: str
    provider_event_id: str
    idempotency_key: str
    payload: Any = None


# =============================================================================
# WEBHOOK TRANSPORT
# =============================================================================

@dataclass
class WebhookRequest:
    """Raw inbound webhook, decoupled from the web framework."""
    body: bytes
    content_type: str = ''
    form: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)

    def json(self) -> Optional[Any]:
        """Parse the body as JSON, or None if it is not JSON."""
        try:
            return json.loads(self.body.decode('utf-8'))
        except (UnicodeDecodeError, ValueError):
            return None


@dataclass
class WebhookVerification:
    ok: bool
    event: Optional[ProviderEvent] = None
    reason: Optional[str] = None

    @classmethod
    def accept(cls, event: ProviderEvent) -> 'WebhookVerification':
        return cls(ok=True, event=event)

    @classmethod
    def reject(cls, reason: str) -> 'WebhookVerification':
        return cls(ok=False, reason=reason)
