"""
E-Sign Exceptions

Typed errors raised by the envelope lifecycle and provider adapters.
Each carries the HTTP status the route layer responds with.
"""

from typing import List


class ESignError(Exception):
    """Base exception for all e-sign errors."""
    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class UnsupportedProviderError(ESignError):
    """Raised when a provider name is not one of the known variants."""
    status_code = 400


class RecipientValidationError(ESignError):
    """
    Raised when recipients or documents for a new envelope are invalid.

    Carries one message per failed field.
    """
    status_code = 400

    def __init__(self, message: str, errors: List[str] = None):
        self.errors = errors or []
        super().__init__(message)


class EnvelopeNotFoundError(ESignError):
    status_code = 404


class EnvelopeConflictError(ESignError):
    """Void on a terminal envelope, or a request id reused for another deal."""
    status_code = 409


class EnvelopePreconditionError(ESignError):
    """Download before completion, or a stub-only operation on a real envelope."""
    status_code = 409


class ProviderAPIError(ESignError):
    """
    Raised when a provider HTTP call fails or returns something unusable.

    Always retryable by the caller. `ambiguous` is set when the request may
    have reached the provider (a timeout), so a create must be reconciled
    rather than blindly retried.
    """
    status_code = 502
    retryable = True

    def __init__(self, message: str, provider_status: int = None, response_body: str = None,
                 ambiguous: bool = False):
        self.provider_status = provider_status
        self.response_body = response_body
        self.ambiguous = ambiguous
        super().__init__(message)
