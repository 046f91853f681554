"""
Identifier Utilities
====================
Validation and canonical forms for email addresses, phone numbers and codes.
"""

import re
from typing import Optional, Tuple

from otpauth_core.errors import ValidationError
from otpauth_core.otp.models import Channel

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[\d\s\-+().]{10,15}$")
PHONE_STRIP_PATTERN = re.compile(r"[\s\-().]")


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lowercase and trim an email address. Returns None for empty input."""
    if not email:
        return None
    return email.strip().lower() or None


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Strip whitespace and punctuation from a phone number.

    A leading ``+`` is kept. No country-code normalization is attempted,
    so ``+919876543210`` and ``9876543210`` stay distinct identifiers.
    """
    if not phone:
        return None
    return PHONE_STRIP_PATTERN.sub("", phone) or None


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return bool(EMAIL_PATTERN.match(email.strip()))


def is_valid_phone(phone: Optional[str]) -> bool:
    """Basic shape check: 10-15 characters of digits, spaces, ``+-().``."""
    if not phone:
        return False
    return bool(PHONE_PATTERN.match(phone.strip()))


def is_valid_code(code: Optional[str], length: int) -> bool:
    if code is None:
        return False
    code = str(code).strip()
    return len(code) == length and code.isdigit()


def resolve_identifier(
    email: Optional[str] = None,
    phone: Optional[str] = None,
    phone_code: Optional[str] = None,
) -> Tuple[str, Channel]:
    """
    Pick the identifier and channel from a request.

    Exactly one of ``email`` or ``phone`` must be given. ``phone_code``
    (e.g. ``+91``) is prefixed to ``phone`` before validation.

    Raises:
        ValidationError: missing, duplicate or malformed identifier
    """
    if not email and not phone:
        raise ValidationError("Email or phone is required", field="identifier")
    if email and phone:
        raise ValidationError("Provide either email or phone, not both", field="identifier")

    if email:
        if not is_valid_email(email):
            raise ValidationError("Invalid email format", field="email")
        return normalize_email(email), Channel.EMAIL

    full_phone = f"{phone_code}{phone}" if phone_code else phone
    if not is_valid_phone(full_phone):
        raise ValidationError("Invalid phone format", field="phone")
    return normalize_phone(full_phone), Channel.SMS
