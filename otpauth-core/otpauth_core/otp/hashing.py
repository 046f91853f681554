"""
OTP Hashing Utilities
=====================
Code generation and one-way hashing for email OTPs.
"""

import random
from typing import Optional

import bcrypt

# Fixed cost factor; codes are short-lived so hashing stays cheap (~50ms).
BCRYPT_ROUNDS = 10


def generate_code(length: int = 4, rng: Optional[random.Random] = None) -> str:
    """
    Generate a numeric OTP with exactly ``length`` digits.

    The value is uniform over ``[10^(length-1), 10^length - 1]`` so it never
    has a leading zero. The default source is not cryptographically secure;
    pass ``random.SystemRandom()`` (or enable ``OTPConfig.secure_random``) to
    harden it.

    Args:
        length: Number of digits
        rng: Random source, defaults to the ``random`` module

    Returns:
        OTP string
    """
    if length < 1:
        raise ValueError("OTP length must be at least 1")
    source = rng or random
    low = 10 ** (length - 1)
    high = 10 ** length - 1
    return str(source.randint(low, high))


def hash_code(code: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """
    Hash an OTP with bcrypt.

    Args:
        code: Plain OTP
        rounds: bcrypt cost factor

    Returns:
        bcrypt hash string
    """
    if not code:
        raise ValueError("OTP cannot be empty")
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(str(code).encode("utf-8"), salt).decode("utf-8")


def verify_code(code: str, code_hash: str) -> bool:
    """
    Verify an OTP against its bcrypt hash.

    bcrypt compares in constant time. Malformed hashes return False.
    """
    if not code or not code_hash:
        return False
    try:
        return bcrypt.checkpw(str(code).encode("utf-8"), code_hash.encode("utf-8"))
    except ValueError:
        return False
