"""
Configuration
=============
Service settings read from environment variables.

A ``.env`` file in the working directory is loaded first when present;
real environment variables win over it.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

from otpauth_core.errors import ConfigurationError
from otpauth_core.otp.models import OTPConfig

DEFAULT_TOKEN_TTL_SECONDS = 7 * 24 * 3600
DEV_TOKEN_SECRET = "dev-insecure-token-secret"


def _bool(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


@dataclass
class Settings:
    """All runtime settings for the OTP auth service."""
    environment: str = "development"
    service_name: str = "otpauth"
    brand_name: str = "OTPAuth"
    log_level: str = "INFO"
    log_json: bool = False

    otp: OTPConfig = field(default_factory=OTPConfig)

    rate_limit_max_requests: int = 3
    rate_limit_window_seconds: int = 60
    sweep_interval_seconds: float = 300.0

    database_url: Optional[str] = None
    redis_url: Optional[str] = None

    token_secret: str = ""
    token_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS

    resend_api_key: Optional[str] = None
    email_from: str = "OTPAuth <onboarding@resend.dev>"
    msg_central_customer_id: Optional[str] = None
    msg_central_api_key: Optional[str] = None
    msg_central_country_code: str = "91"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def email_configured(self) -> bool:
        return bool(self.resend_api_key)

    @property
    def sms_configured(self) -> bool:
        return bool(self.msg_central_customer_id and self.msg_central_api_key)

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        dotenv: bool = True,
    ) -> "Settings":
        """
        Build settings from ``env`` (defaults to ``os.environ``).

        Raises:
            ConfigurationError: malformed numbers, or TOKEN_SECRET missing in production
        """
        if env is None:
            if dotenv:
                load_dotenv(override=False)
            env = os.environ

        otp = OTPConfig(
            length=_int(env, "OTP_LENGTH", 4),
            expiry_seconds=_int(env, "OTP_EXPIRY_SECONDS", 180),
            max_attempts=_int(env, "OTP_MAX_ATTEMPTS", 3),
            cooldown_seconds=_int(env, "OTP_COOLDOWN_SECONDS", 60),
            provider_timeout_seconds=_float(env, "PROVIDER_TIMEOUT_SECONDS", 15.0),
            secure_random=_bool(env.get("OTP_SECURE_RANDOM")),
        )

        settings = cls(
            environment=env.get("ENVIRONMENT", "development"),
            service_name=env.get("SERVICE_NAME", "otpauth"),
            brand_name=env.get("BRAND_NAME", "OTPAuth"),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_json=_bool(env.get("LOG_JSON")),
            otp=otp,
            rate_limit_max_requests=_int(env, "RATE_LIMIT_MAX_REQUESTS", 3),
            rate_limit_window_seconds=_int(env, "RATE_LIMIT_WINDOW_SECONDS", 60),
            sweep_interval_seconds=_float(env, "SWEEP_INTERVAL_SECONDS", 300.0),
            database_url=env.get("DATABASE_URL") or None,
            redis_url=env.get("REDIS_URL") or None,
            token_secret=env.get("TOKEN_SECRET", ""),
            token_ttl_seconds=_int(env, "TOKEN_TTL_SECONDS", DEFAULT_TOKEN_TTL_SECONDS),
            resend_api_key=env.get("RESEND_API_KEY") or None,
            email_from=env.get("EMAIL_FROM", "OTPAuth <onboarding@resend.dev>"),
            msg_central_customer_id=env.get("MSG_CENTRAL_CUSTOMER_ID") or None,
            msg_central_api_key=env.get("MSG_CENTRAL_API_KEY") or None,
            msg_central_country_code=env.get("MSG_CENTRAL_COUNTRY_CODE", "91"),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.otp.length < 1:
            raise ConfigurationError("OTP_LENGTH must be at least 1")
        if self.otp.max_attempts < 1:
            raise ConfigurationError("OTP_MAX_ATTEMPTS must be at least 1")
        if self.rate_limit_max_requests < 1:
            raise ConfigurationError("RATE_LIMIT_MAX_REQUESTS must be at least 1")
        if self.is_production and not self.token_secret:
            raise ConfigurationError("TOKEN_SECRET is required in production")

    def effective_token_secret(self) -> str:
        return self.token_secret or DEV_TOKEN_SECRET
