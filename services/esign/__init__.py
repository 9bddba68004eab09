"""
E-Sign Envelope Lifecycle

Drives external signature envelopes from creation to a terminal status,
over interchangeable provider adapters (in-process stub, Dropbox Sign).

Usage:
    from services.esign import EnvelopeLifecycleManager, WebhookIngress, get_esign_provider

    manager = EnvelopeLifecycleManager(
        lambda name: get_esign_provider(name, app.config, stub_store),
        app.config['ESIGN_PROVIDER'],
        storage
    )
    envelope = manager.create_envelope(org_id, deal_id, documents, recipients)
    response = WebhookIngress(manager).handle('dropboxsign', webhook_request)
"""

from .status import EnvelopeStatus, TERMINAL_STATUSES, STATUS_RANK, should_apply

from .types import (
    RecipientRole,
    Recipient,
    EnvelopeDocument,
    ProviderEnvelope,
    EnvelopeDetails,
    ProviderEvent,
    WebhookRequest,
    WebhookVerification,
    parse_recipients,
    validate_documents
)

from .exceptions import (
    ESignError,
    UnsupportedProviderError,
    RecipientValidationError,
    EnvelopeNotFoundError,
    EnvelopeConflictError,
    EnvelopePreconditionError,
    ProviderAPIError
)

from .base import ESignProvider
from .stub_provider import StubESignProvider, StubEnvelopeStore
from .dropboxsign_provider import DropboxSignProvider
from .provider import ProviderName, get_esign_provider, parse_provider_name
from .lifecycle import EnvelopeLifecycleManager
from .webhooks import WebhookIngress, WebhookResponse

__all__ = [
    # Status
    'EnvelopeStatus',
    'TERMINAL_STATUSES',
    'STATUS_RANK',
    'should_apply',

    # Types
    'RecipientRole',
    'Recipient',
    'EnvelopeDocument',
    'ProviderEnvelope',
    'EnvelopeDetails',
    'ProviderEvent',
    'WebhookRequest',
    'WebhookVerification',
    'parse_recipients',
    'validate_documents',

    # Exceptions
    'ESignError',
    'UnsupportedProviderError',
    'RecipientValidationError',
    'EnvelopeNotFoundError',
    'EnvelopeConflictError',
    'EnvelopePreconditionError',
    'ProviderAPIError',

    # Providers
    'ESignProvider',
    'StubESignProvider',
    'StubEnvelopeStore',
    'DropboxSignProvider',
    'ProviderName',
    'get_esign_provider',
    'parse_provider_name',

    # Orchestration
    'EnvelopeLifecycleManager',
    'WebhookIngress',
    'WebhookResponse',
]
