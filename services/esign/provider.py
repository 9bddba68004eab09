"""
E-Sign Provider Selection

Closed mapping from configured provider name to adapter. Adding a provider
means adding a ProviderName member and a branch here.
"""

from enum import Enum
from typing import Any, Mapping

from .base import ESignProvider
from .dropboxsign_provider import DropboxSignProvider, DEFAULT_BASE_URL, DEFAULT_TIMEOUT
from .exceptions import UnsupportedProviderError
from .stub_provider import StubESignProvider, StubEnvelopeStore


class ProviderName(Enum):
    STUB = 'stub'
    DROPBOXSIGN = 'dropboxsign'


def parse_provider_name(name: Any) -> ProviderName:
    try:
        return ProviderName(str(name or '').strip().lower())
    except ValueError:
        raise UnsupportedProviderError(f"Unsupported e-sign provider: {name}")


def get_esign_provider(name: Any, config: Mapping[str, Any],
                       stub_store: StubEnvelopeStore = None) -> ESignProvider:
    """
    Build the adapter for a provider name.

    Args:
        name: 'stub' or 'dropboxsign'
        config: app config mapping (ESIGN_* keys)
        stub_store: envelope store the stub provider keeps its state in

    Raises:
        UnsupportedProviderError: for any other name
    """
    provider_name = parse_provider_name(name)

    if provider_name is ProviderName.STUB:
        return StubESignProvider(
            store=stub_store if stub_store is not None else StubEnvelopeStore(),
            auto_complete=config.get('ESIGN_STUB_AUTO_COMPLETE', True)
        )

    if provider_name is ProviderName.DROPBOXSIGN:
        return DropboxSignProvider(
            api_key=config.get('ESIGN_DROPBOXSIGN_API_KEY', ''),
            base_url=config.get('ESIGN_DROPBOXSIGN_BASE_URL', DEFAULT_BASE_URL),
            test_mode=config.get('ESIGN_DROPBOXSIGN_TEST_MODE', True),
            timeout=config.get('ESIGN_HTTP_TIMEOUT', DEFAULT_TIMEOUT)
        )

    raise UnsupportedProviderError(f"Unsupported e-sign provider: {name}")
