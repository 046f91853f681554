"""
OTP Models
==========
Data models and enums for OTP challenges.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class Channel(str, Enum):
    """OTP delivery/verification channels."""
    EMAIL = "email"
    SMS = "sms"


@dataclass(frozen=True)
class EmailSecret:
    """Email challenge: the code is verified locally against its hash."""
    secret_hash: str

    channel = Channel.EMAIL


@dataclass(frozen=True)
class SmsHandle:
    """SMS challenge: the provider holds the code, we keep its handle."""
    verification_handle: str

    channel = Channel.SMS


ChallengeSecret = Union[EmailSecret, SmsHandle]


@dataclass
class OTPConfig:
    """Configuration for the OTP lifecycle."""
    length: int = 4
    expiry_seconds: int = 180  # 3 minutes
    max_attempts: int = 3
    cooldown_seconds: int = 60  # Min time between OTPs
    provider_timeout_seconds: float = 15.0
    secure_random: bool = False


@dataclass
class OTPRecord:
    """One in-flight challenge."""
    id: str
    identifier: str
    channel: Channel
    secret: ChallengeSecret
    expires_at: datetime
    created_at: datetime
    attempts: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_exhausted(self, max_attempts: int) -> bool:
        return self.attempts >= max_attempts

    @property
    def secret_hash(self) -> Optional[str]:
        return self.secret.secret_hash if isinstance(self.secret, EmailSecret) else None

    @property
    def verification_handle(self) -> Optional[str]:
        return self.secret.verification_handle if isinstance(self.secret, SmsHandle) else None

    def copy(self) -> "OTPRecord":
        return replace(self)


@dataclass
class ChallengeIssued:
    """
    Result of a successful challenge request.

    ``code`` is the plaintext email code, returned so the caller can deliver
    it. It is None for SMS, where the provider delivers its own code.
    """
    record_id: str
    identifier: str
    channel: Channel
    expires_at: datetime
    code: Optional[str] = field(default=None, repr=False)


@dataclass
class VerificationResult:
    identifier: str
    channel: Channel
    verified_at: datetime
