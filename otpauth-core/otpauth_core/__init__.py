"""
otpauth-core
============
Passwordless one-time-passcode authentication over email and SMS.
"""

__version__ = "0.1.0"

# Errors
from otpauth_core.errors import (
    ErrorKind,
    OTPAuthError,
    ValidationError,
    CooldownError,
    RateLimitError,
    NotFoundError,
    ExpiredError,
    ExhaustedError,
    InvalidCodeError,
    ProviderError,
    DeliveryError,
    UserNotFoundError,
    AuthenticationError,
    ConflictError,
    ConfigurationError,
)

# Identifiers
from otpauth_core.identifiers import (
    normalize_email,
    normalize_phone,
    is_valid_email,
    is_valid_phone,
    is_valid_code,
    resolve_identifier,
)

# OTP
from otpauth_core.otp import (
    Channel,
    EmailSecret,
    SmsHandle,
    OTPConfig,
    OTPRecord,
    ChallengeIssued,
    VerificationResult,
    OTPRecordStore,
    InMemoryOTPStore,
    OTPLifecycleManager,
    generate_code,
    hash_code,
    verify_code,
)
from otpauth_core.otp.sql_store import SQLAlchemyOTPStore

# Rate Guard
from otpauth_core.rate_limit import (
    SlidingWindowGuard,
    RedisSlidingWindowGuard,
    RateLimitInfo,
    RateLimitResult,
)

# Users & Tokens
from otpauth_core.users import User, UserDirectory, InMemoryUserDirectory
from otpauth_core.sql_users import SQLAlchemyUserDirectory
from otpauth_core.tokens import SessionTokenIssuer

# Service
from otpauth_core.config import Settings
from otpauth_core.service import OTPAuthService, OTPSent, AuthResult
from otpauth_core.context import AppContext

# Logging
from otpauth_core.logging_config import setup_logging, mask_identifier

# Tasks
from otpauth_core.tasks import KeyedLock, PeriodicTask

__all__ = [
    "__version__",
    # Errors
    "ErrorKind",
    "OTPAuthError",
    "ValidationError",
    "CooldownError",
    "RateLimitError",
    "NotFoundError",
    "ExpiredError",
    "ExhaustedError",
    "InvalidCodeError",
    "ProviderError",
    "DeliveryError",
    "UserNotFoundError",
    "AuthenticationError",
    "ConflictError",
    "ConfigurationError",
    # Identifiers
    "normalize_email",
    "normalize_phone",
    "is_valid_email",
    "is_valid_phone",
    "is_valid_code",
    "resolve_identifier",
    # OTP
    "Channel",
    "EmailSecret",
    "SmsHandle",
    "OTPConfig",
    "OTPRecord",
    "ChallengeIssued",
    "VerificationResult",
    "OTPRecordStore",
    "InMemoryOTPStore",
    "SQLAlchemyOTPStore",
    "OTPLifecycleManager",
    "generate_code",
    "hash_code",
    "verify_code",
    # Rate Guard
    "SlidingWindowGuard",
    "RedisSlidingWindowGuard",
    "RateLimitInfo",
    "RateLimitResult",
    # Users & Tokens
    "User",
    "UserDirectory",
    "InMemoryUserDirectory",
    "SQLAlchemyUserDirectory",
    "SessionTokenIssuer",
    # Service
    "Settings",
    "OTPAuthService",
    "OTPSent",
    "AuthResult",
    "AppContext",
    # Logging
    "setup_logging",
    "mask_identifier",
    # Tasks
    "KeyedLock",
    "PeriodicTask",
]
