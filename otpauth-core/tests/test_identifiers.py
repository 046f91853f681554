"""
Unit Tests for Identifiers, Hashing and Log Masking
===================================================
"""

import random

import pytest

from otpauth_core.errors import ValidationError
from otpauth_core.identifiers import (
    is_valid_code,
    is_valid_email,
    is_valid_phone,
    normalize_email,
    normalize_phone,
    resolve_identifier,
)
from otpauth_core.logging_config import mask_identifier
from otpauth_core.otp import Channel, generate_code, hash_code, verify_code


class TestNormalization:
    """Canonical forms for emails and phones."""

    def test_normalize_email(self):
        """Should trim and lowercase."""
        assert normalize_email("  Alice@Example.COM ") == "alice@example.com"

    def test_normalize_email_empty(self):
        assert normalize_email("") is None
        assert normalize_email(None) is None
        assert normalize_email("   ") is None

    def test_normalize_phone(self):
        """Should strip whitespace and punctuation but keep the plus."""
        assert normalize_phone("+91 (987) 654-3210") == "+919876543210"
        assert normalize_phone("987.654.3210") == "9876543210"

    def test_normalize_phone_keeps_country_code_distinct(self):
        assert normalize_phone("+919876543210") != normalize_phone("9876543210")

    def test_normalize_phone_empty(self):
        assert normalize_phone(None) is None
        assert normalize_phone(" - ") is None


class TestValidation:
    """Shape checks."""

    def test_email_shapes(self):
        assert is_valid_email("a@example.com") is True
        assert is_valid_email("a@example") is False
        assert is_valid_email("a b@example.com") is False
        assert is_valid_email(None) is False

    def test_phone_shapes(self):
        assert is_valid_phone("+919876543210") is True
        assert is_valid_phone("(987) 654-3210") is True
        assert is_valid_phone("12345") is False
        assert is_valid_phone("98765abc10") is False

    def test_code_shapes(self):
        assert is_valid_code("1234", 4) is True
        assert is_valid_code("123", 4) is False
        assert is_valid_code("12a4", 4) is False
        assert is_valid_code(None, 4) is False


class TestResolveIdentifier:
    """Picking the identifier and channel from a request."""

    def test_email(self):
        assert resolve_identifier(email="A@Example.com") == ("a@example.com", Channel.EMAIL)

    def test_phone_with_code(self):
        identifier, channel = resolve_identifier(phone="98765 43210", phone_code="+91")
        assert identifier == "+919876543210"
        assert channel == Channel.SMS

    def test_missing(self):
        with pytest.raises(ValidationError) as exc_info:
            resolve_identifier()
        assert exc_info.value.field == "identifier"

    def test_both(self):
        with pytest.raises(ValidationError):
            resolve_identifier(email="a@example.com", phone="9876543210")

    def test_bad_email(self):
        with pytest.raises(ValidationError) as exc_info:
            resolve_identifier(email="not-an-email")
        assert exc_info.value.field == "email"

    def test_bad_phone(self):
        with pytest.raises(ValidationError) as exc_info:
            resolve_identifier(phone="123")
        assert exc_info.value.field == "phone"


class TestCodes:
    """Code generation and bcrypt hashing."""

    def test_generate_code_length(self):
        """Codes always have exactly the requested digits."""
        rng = random.Random(7)
        for length in (1, 4, 6):
            for _ in range(50):
                code = generate_code(length, rng)
                assert len(code) == length
                assert code.isdigit()
                assert length == 1 or code[0] != "0"

    def test_generate_code_bounds(self):
        class Edge:
            def __init__(self, pick):
                self.pick = pick

            def randint(self, low, high):
                return low if self.pick == "low" else high

        assert generate_code(4, Edge("low")) == "1000"
        assert generate_code(4, Edge("high")) == "9999"

    def test_generate_code_rejects_zero_length(self):
        with pytest.raises(ValueError):
            generate_code(0)

    def test_hash_and_verify(self):
        code_hash = hash_code("1234", rounds=4)

        assert code_hash != "1234"
        assert code_hash.startswith("$2")
        assert verify_code("1234", code_hash) is True
        assert verify_code("4321", code_hash) is False

    def test_verify_malformed_hash(self):
        assert verify_code("1234", "not-a-hash") is False
        assert verify_code("", "x") is False


class TestMasking:
    """Identifiers are masked in logs."""

    def test_mask_email(self):
        assert mask_identifier("alice@example.com") == "a***@example.com"

    def test_mask_phone(self):
        assert mask_identifier("+919876543210") == "+91******3210"

    def test_mask_short(self):
        assert mask_identifier("1234") == "****"
        assert mask_identifier("") == ""
