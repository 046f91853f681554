"""
Unit Tests for Session Tokens and Settings
==========================================
"""

import pytest

from otpauth_core.config import DEV_TOKEN_SECRET, Settings
from otpauth_core.errors import ConfigurationError
from otpauth_core.tokens import SessionTokenIssuer


class Clock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestSessionTokens:
    """HMAC-signed session tokens."""

    def test_issue_and_decode(self):
        """Should round-trip claims and add iat/exp."""
        clock = Clock()
        issuer = SessionTokenIssuer("secret", ttl_seconds=60, clock=clock)

        token = issuer.issue({"userId": "u1", "email": "a@example.com"})
        claims = issuer.decode(token)

        assert claims["userId"] == "u1"
        assert claims["email"] == "a@example.com"
        assert claims["exp"] - claims["iat"] == 60

    def test_expired(self):
        clock = Clock()
        issuer = SessionTokenIssuer("secret", ttl_seconds=60, clock=clock)
        token = issuer.issue({"userId": "u1"})

        clock.now += 60
        assert issuer.decode(token) is None

    def test_wrong_secret(self):
        token = SessionTokenIssuer("secret").issue({"userId": "u1"})
        assert SessionTokenIssuer("other").decode(token) is None

    def test_tampered_payload(self):
        issuer = SessionTokenIssuer("secret")
        token = issuer.issue({"userId": "u1"})
        forged = issuer.issue({"userId": "admin"})

        payload, _ = forged.split(".")
        _, signature = token.split(".")
        assert issuer.decode(f"{payload}.{signature}") is None

    def test_garbage(self):
        issuer = SessionTokenIssuer("secret")
        assert issuer.decode("") is None
        assert issuer.decode("abc") is None
        assert issuer.decode("a.b.c") is None

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            SessionTokenIssuer("")


class TestSettings:
    """Environment-driven settings."""

    def test_defaults(self):
        settings = Settings.from_env({})

        assert settings.environment == "development"
        assert settings.otp.length == 4
        assert settings.otp.expiry_seconds == 180
        assert settings.otp.max_attempts == 3
        assert settings.otp.cooldown_seconds == 60
        assert settings.otp.secure_random is False
        assert settings.rate_limit_max_requests == 3
        assert settings.rate_limit_window_seconds == 60
        assert settings.sweep_interval_seconds == 300
        assert settings.token_ttl_seconds == 7 * 24 * 3600
        assert settings.msg_central_country_code == "91"
        assert settings.database_url is None
        assert settings.effective_token_secret() == DEV_TOKEN_SECRET

    def test_overrides(self):
        settings = Settings.from_env({
            "OTP_LENGTH": "6",
            "OTP_EXPIRY_SECONDS": "300",
            "OTP_SECURE_RANDOM": "true",
            "RATE_LIMIT_MAX_REQUESTS": "5",
            "DATABASE_URL": "sqlite+aiosqlite:///otp.db",
            "RESEND_API_KEY": "re_123",
            "MSG_CENTRAL_CUSTOMER_ID": "C-1",
            "MSG_CENTRAL_API_KEY": "key",
            "LOG_JSON": "1",
        })

        assert settings.otp.length == 6
        assert settings.otp.expiry_seconds == 300
        assert settings.otp.secure_random is True
        assert settings.rate_limit_max_requests == 5
        assert settings.database_url == "sqlite+aiosqlite:///otp.db"
        assert settings.email_configured is True
        assert settings.sms_configured is True
        assert settings.log_json is True

    def test_bad_number(self):
        with pytest.raises(ConfigurationError):
            Settings.from_env({"OTP_LENGTH": "four"})

    def test_production_requires_token_secret(self):
        with pytest.raises(ConfigurationError):
            Settings.from_env({"ENVIRONMENT": "production"})

        settings = Settings.from_env({"ENVIRONMENT": "production", "TOKEN_SECRET": "s3cret"})
        assert settings.is_production is True
        assert settings.effective_token_secret() == "s3cret"
