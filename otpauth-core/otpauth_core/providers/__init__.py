"""
Providers
=========
Email delivery and delegated SMS verification adapters.
"""

# Re-export all public APIs
from .base import (
    BaseProvider,
    DeliveryResult,
    EmailDeliveryProvider,
    Initiation,
    VerificationProvider,
)
from .dev import LoggingEmailProvider, LoggingVerificationProvider
from .message_central import MessageCentralProvider, split_phone
from .resend import ResendEmailProvider
from .templates import (
    OTP_SUBJECT,
    WELCOME_SUBJECT,
    expiry_minutes,
    render_otp_email,
    render_welcome_email,
)

__all__ = [
    # Interfaces
    "BaseProvider",
    "DeliveryResult",
    "EmailDeliveryProvider",
    "Initiation",
    "VerificationProvider",
    # Adapters
    "ResendEmailProvider",
    "MessageCentralProvider",
    "split_phone",
    "LoggingEmailProvider",
    "LoggingVerificationProvider",
    # Templates
    "OTP_SUBJECT",
    "WELCOME_SUBJECT",
    "expiry_minutes",
    "render_otp_email",
    "render_welcome_email",
]
