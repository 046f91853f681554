"""
Error Taxonomy
==============
Exceptions raised by the OTP core. Every error carries a stable ``kind`` so
callers branch on the enumerated reason, never on the message text.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Enumerated failure reasons."""
    VALIDATION = "validation"
    COOLDOWN = "cooldown"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    INVALID_CODE = "invalid_code"
    PROVIDER = "provider"
    DELIVERY = "delivery"
    USER_NOT_FOUND = "user_not_found"
    UNAUTHORIZED = "unauthorized"
    CONFLICT = "conflict"
    CONFIGURATION = "configuration"


class OTPAuthError(Exception):
    """Base exception for all OTP authentication errors."""

    kind: ErrorKind = ErrorKind.VALIDATION
    default_message = "OTP authentication error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(OTPAuthError):
    """Malformed identifier or code shape."""
    kind = ErrorKind.VALIDATION
    default_message = "Invalid request"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class _RetryableError(OTPAuthError):
    """Error that tells the caller how long to wait."""

    def __init__(self, retry_after: int, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(message or self.default_message.format(retry_after=retry_after))


class CooldownError(_RetryableError):
    """A challenge was issued for this identifier too recently."""
    kind = ErrorKind.COOLDOWN
    default_message = "Please wait {retry_after} seconds before requesting a new OTP"


class RateLimitError(_RetryableError):
    """Too many requests for this identifier inside the guard window."""
    kind = ErrorKind.RATE_LIMITED
    default_message = "Too many requests. Please try again after {retry_after} seconds"


class NotFoundError(OTPAuthError):
    """No active challenge for the identifier and channel."""
    kind = ErrorKind.NOT_FOUND
    default_message = "No OTP request found. Please request a new OTP."


class ExpiredError(OTPAuthError):
    kind = ErrorKind.EXPIRED
    default_message = "OTP has expired. Please request a new OTP."


class ExhaustedError(OTPAuthError):
    kind = ErrorKind.EXHAUSTED
    default_message = "Maximum verification attempts reached. Please request a new OTP."


class InvalidCodeError(OTPAuthError):
    """Candidate code did not match."""
    kind = ErrorKind.INVALID_CODE
    default_message = "Invalid OTP"

    def __init__(self, attempts_remaining: int, message: Optional[str] = None):
        self.attempts_remaining = attempts_remaining
        super().__init__(
            message or f"Invalid OTP. {attempts_remaining} attempts remaining"
        )


class ProviderError(OTPAuthError):
    """
    Failure inside an external delivery or verification provider.

    ``details`` holds the provider payload for logging; it is never
    shown to end users.
    """
    kind = ErrorKind.PROVIDER
    default_message = "Verification service temporarily unavailable"

    def __init__(
        self,
        message: Optional[str] = None,
        provider: str = "unknown",
        status_code: Optional[int] = None,
        details: Any = None,
    ):
        self.provider = provider
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class DeliveryError(ProviderError):
    """Outbound email delivery failed."""
    kind = ErrorKind.DELIVERY
    default_message = "Failed to deliver OTP"


class UserNotFoundError(OTPAuthError):
    kind = ErrorKind.USER_NOT_FOUND
    default_message = "User not found"


class AuthenticationError(OTPAuthError):
    """Missing, malformed or expired session token."""
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Authentication required"


class ConflictError(OTPAuthError):
    """A unique user attribute is already taken."""
    kind = ErrorKind.CONFLICT
    default_message = "Already in use"


class ConfigurationError(OTPAuthError):
    kind = ErrorKind.CONFIGURATION
    default_message = "Service is not configured"
