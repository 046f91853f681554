"""
OTP Lifecycle
=============
Challenge generation, storage, verification and expiry for email and SMS.
"""

# Re-export all public APIs
from .models import (
    Channel,
    EmailSecret,
    SmsHandle,
    ChallengeSecret,
    OTPConfig,
    OTPRecord,
    ChallengeIssued,
    VerificationResult,
)
from .hashing import BCRYPT_ROUNDS, generate_code, hash_code, verify_code
from .store import OTPRecordStore, InMemoryOTPStore
from .channels import ChannelStrategy, EmailChannel, SmsChannel, ChannelRegistry
from .manager import OTPLifecycleManager

__all__ = [
    # Models
    "Channel",
    "EmailSecret",
    "SmsHandle",
    "ChallengeSecret",
    "OTPConfig",
    "OTPRecord",
    "ChallengeIssued",
    "VerificationResult",
    # Hashing
    "BCRYPT_ROUNDS",
    "generate_code",
    "hash_code",
    "verify_code",
    # Stores
    "OTPRecordStore",
    "InMemoryOTPStore",
    # Channels
    "ChannelStrategy",
    "EmailChannel",
    "SmsChannel",
    "ChannelRegistry",
    # Manager
    "OTPLifecycleManager",
]
