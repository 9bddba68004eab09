"""
Compliance Exceptions

Raised by the rule-set admin paths and the store. The evaluator itself
never raises for malformed rule-set input.
"""

from typing import List


class ComplianceError(Exception):
    """Base exception for compliance errors."""
    status_code = 400


class ConfigurationError(ComplianceError):
    """
    Raised when a rule set fails schema validation on the admin path.

    Carries every schema message so the caller can show them all at once.
    """
    def __init__(self, message: str, errors: List[str] = None):
        self.errors = errors or []
        super().__init__(message)


class SnapshotValidationError(ComplianceError):
    """Raised when a deal snapshot payload does not match its schema."""
    def __init__(self, message: str, errors: List[str] = None):
        self.errors = errors or []
        super().__init__(message)


class RuleSetOverlapError(ComplianceError):
    """Publishing would leave two active versions for one (org, jurisdiction)."""
    status_code = 409


class RuleSetNotFoundError(ComplianceError):
    status_code = 404
