"""
Error taxonomy shared by the ledger, quota and reporting modules.
"""

from typing import Any, Optional


class QuotaGuardError(Exception):
    """Base class for all errors raised by AI Quota Guard."""


class ValidationError(QuotaGuardError, ValueError):
    """Raised when input has the wrong shape or an unknown enum value."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(QuotaGuardError, LookupError):
    """Raised when a referenced plan, subscription or suggestion is absent."""


class AuthorizationError(QuotaGuardError):
    """Raised when a row belongs to a different user than the caller."""


class ExternalServiceError(QuotaGuardError):
    """Raised when the AI provider or payment processor call fails."""


class QuotaExceededError(QuotaGuardError):
    """Raised when the quota gate denies a call."""

    def __init__(self, message: str, decision: Any):
        super().__init__(message)
        self.decision = decision
