"""
OTP Auth Service
================
Request-level login flow on top of the lifecycle manager.

send:   validate -> normalize -> rate guard -> issue challenge -> deliver email
verify: validate -> normalize -> verify challenge -> find/create user -> token
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import structlog

from otpauth_core.errors import (
    ConflictError,
    ProviderError,
    UserNotFoundError,
    ValidationError,
)
from otpauth_core.identifiers import (
    is_valid_code,
    is_valid_email,
    is_valid_phone,
    normalize_email,
    normalize_phone,
    resolve_identifier,
)
from otpauth_core.logging_config import mask_identifier
from otpauth_core.otp.manager import OTPLifecycleManager
from otpauth_core.otp.models import ChallengeIssued, Channel
from otpauth_core.providers.base import EmailDeliveryProvider
from otpauth_core.providers.templates import (
    OTP_SUBJECT,
    WELCOME_SUBJECT,
    expiry_minutes,
    render_otp_email,
    render_welcome_email,
)
from otpauth_core.tokens import SessionTokenIssuer
from otpauth_core.users import PROFILE_FIELDS, User, UserDirectory

logger = structlog.get_logger(__name__)


@dataclass
class OTPSent:
    identifier: str
    channel: Channel
    expires_at: datetime
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"identifier": self.identifier, "expiresAt": self.expires_at.isoformat()}


@dataclass
class AuthResult:
    token: str
    user: User
    is_new_user: bool

    @property
    def message(self) -> str:
        return "Registration successful" if self.is_new_user else "Login successful"

    def to_dict(self) -> Dict[str, Any]:
        return {"token": self.token, "isNewUser": self.is_new_user, "user": self.user.to_dict()}


class OTPAuthService:
    """
    Passwordless login over email or SMS.

    Email delivery failures are logged and do not fail the send: the
    challenge exists and the user can ask for a resend.
    """

    def __init__(
        self,
        manager: OTPLifecycleManager,
        guard,
        users: UserDirectory,
        tokens: SessionTokenIssuer,
        email_provider: Optional[EmailDeliveryProvider] = None,
        brand_name: str = "OTPAuth",
    ):
        """
        Args:
            manager: OTP lifecycle manager
            guard: Rate guard exposing ``async hit(key)``
            users: User directory
            tokens: Session token issuer
            email_provider: Sends OTP and welcome emails
            brand_name: Shown in email subjects and bodies
        """
        self.manager = manager
        self.guard = guard
        self.users = users
        self.tokens = tokens
        self.email_provider = email_provider
        self.brand_name = brand_name

    async def send_otp(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        phone_code: Optional[str] = None,
    ) -> OTPSent:
        """
        Issue an OTP to an email address or phone number.

        Raises:
            ValidationError, RateLimitError, CooldownError, ProviderError
        """
        return await self._issue(email, phone, phone_code, verb="sent")

    async def resend_otp(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        phone_code: Optional[str] = None,
    ) -> OTPSent:
        """Same as ``send_otp``; the cooldown applies either way."""
        return await self._issue(email, phone, phone_code, verb="resent")

    async def _issue(self, email, phone, phone_code, verb: str) -> OTPSent:
        identifier, channel = resolve_identifier(email, phone, phone_code)
        await self.guard.hit(identifier)

        issued = await self.manager.request_challenge(identifier, channel)
        if channel == Channel.EMAIL:
            await self._deliver_otp_email(issued)

        target = "email" if channel == Channel.EMAIL else "phone"
        return OTPSent(
            identifier=identifier,
            channel=channel,
            expires_at=issued.expires_at,
            message=f"OTP {verb} successfully to {target}",
        )

    async def _deliver_otp_email(self, issued: ChallengeIssued) -> None:
        masked = mask_identifier(issued.identifier)
        if self.email_provider is None:
            logger.warning("otp_email.no_provider", identifier=masked)
            return
        try:
            await self.email_provider.send(
                to=issued.identifier,
                subject=OTP_SUBJECT.format(brand=self.brand_name),
                html=render_otp_email(
                    issued.code, expiry_minutes(issued.expires_at), self.brand_name
                ),
            )
        except ProviderError as e:
            logger.error(
                "otp_email.delivery_failed",
                identifier=masked,
                provider=e.provider,
                status_code=e.status_code,
                details=e.details,
            )

    async def verify_otp(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        otp: Optional[str] = None,
        phone_code: Optional[str] = None,
    ) -> AuthResult:
        """
        Verify an OTP and log the user in, creating them on first login.

        Raises:
            ValidationError, NotFoundError, ExpiredError, ExhaustedError,
            InvalidCodeError, ProviderError
        """
        code = str(otp).strip() if otp is not None else ""
        if not code:
            raise ValidationError("OTP is required", field="otp")
        identifier, channel = resolve_identifier(email, phone, phone_code)
        if not code.isdigit():
            raise ValidationError("OTP must contain digits only", field="otp")
        if channel == Channel.EMAIL and not is_valid_code(code, self.manager.config.length):
            raise ValidationError(
                f"OTP must be {self.manager.config.length} digits", field="otp"
            )

        await self.manager.submit_verification(identifier, channel, code)

        user, is_new_user = await self._find_or_create_user(identifier, channel)
        if is_new_user and user.email:
            await self._send_welcome(user)

        token = self.tokens.issue({"userId": user.id, "email": user.email, "phone": user.phone})
        logger.info("auth.login", user_id=user.id, channel=channel.value, new_user=is_new_user)
        return AuthResult(token=token, user=user, is_new_user=is_new_user)

    async def _find_or_create_user(self, identifier: str, channel: Channel):
        user = await self.users.find_by_identifier(identifier, channel)
        if user is not None:
            if not user.is_verified:
                user.is_verified = True
                user = await self.users.save(user)
            return user, False

        if channel == Channel.EMAIL:
            user = User.new(email=identifier, is_verified=True)
        else:
            user = User.new(phone=identifier, is_verified=True)
        try:
            return await self.users.create(user), True
        except ConflictError:
            # Lost a race with a concurrent first login
            existing = await self.users.find_by_identifier(identifier, channel)
            if existing is None:
                raise
            return existing, False

    async def _send_welcome(self, user: User) -> None:
        if self.email_provider is None:
            return
        try:
            await self.email_provider.send(
                to=user.email,
                subject=WELCOME_SUBJECT.format(brand=self.brand_name),
                html=render_welcome_email(user.fullname, self.brand_name),
            )
        except ProviderError as e:
            logger.error("welcome_email.delivery_failed", user_id=user.id, error=e.message)

    def authenticate(self, token: str) -> Optional[Dict[str, Any]]:
        """Claims of a valid session token, or None."""
        return self.tokens.decode(token)

    async def get_profile(self, user_id: str) -> User:
        user = await self.users.get(user_id)
        if user is None:
            raise UserNotFoundError()
        return user

    async def update_profile(
        self,
        user_id: str,
        fullname: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        profile: Optional[Dict[str, Any]] = None,
    ) -> User:
        """
        Update profile fields that were provided.

        ``profile`` accepts ``current_course`` and ``enrolled_course``.

        Raises:
            ValidationError: nothing to update or malformed email/phone
            UserNotFoundError: unknown user
            ConflictError: email or phone belongs to another user
        """
        if fullname is None and email is None and phone is None and not profile:
            raise ValidationError("No profile data provided")

        user = await self.get_profile(user_id)

        if fullname is not None:
            user.fullname = fullname.strip()

        if email is not None:
            if not is_valid_email(email):
                raise ValidationError("Invalid email format", field="email")
            user.email = normalize_email(email)

        if phone is not None:
            if not is_valid_phone(phone):
                raise ValidationError("Invalid phone format", field="phone")
            user.phone = normalize_phone(phone)

        for key, value in (profile or {}).items():
            if key not in PROFILE_FIELDS:
                raise ValidationError(f"Unknown profile field: {key}", field="profile")
            if value is not None:
                user.profile[key] = value

        if user.has_completed_profile():
            user.profile_completed = True

        user = await self.users.save(user)
        logger.info("user.profile_updated", user_id=user.id)
        return user
