"""
Unit Tests for the Auth Service
===============================
Send/verify flows, user creation and profile updates.
"""

import pytest

from otpauth_core.errors import (
    ConflictError,
    CooldownError,
    DeliveryError,
    InvalidCodeError,
    RateLimitError,
    UserNotFoundError,
    ValidationError,
)
from otpauth_core.otp import Channel
from otpauth_core.providers import LoggingEmailProvider
from otpauth_core.rate_limit import SlidingWindowGuard
from otpauth_core.service import OTPAuthService
from otpauth_core.tokens import SessionTokenIssuer
from otpauth_core.users import InMemoryUserDirectory, User

EMAIL = "alice@example.com"
PHONE = "+919876543210"


class FailingEmailProvider(LoggingEmailProvider):
    async def send(self, to, subject, html):
        raise DeliveryError(provider="test", status_code=500, details="boom")


class RacingUserDirectory(InMemoryUserDirectory):
    """Another request creates the same user between lookup and insert."""

    async def create(self, user):
        if not len(self):
            await super().create(User.new(email=user.email, is_verified=True))
            raise ConflictError("Email already in use")
        return await super().create(user)


@pytest.fixture
def users():
    return InMemoryUserDirectory()


@pytest.fixture
def outbox():
    return LoggingEmailProvider()


@pytest.fixture
def service(manager, users, outbox, clock):
    return OTPAuthService(
        manager,
        SlidingWindowGuard(max_requests=3, window_seconds=600, clock=clock.timestamp),
        users,
        SessionTokenIssuer("test-secret", clock=clock.timestamp),
        email_provider=outbox,
        brand_name="Acme",
    )


class TestSendOTP:
    """send_otp and resend_otp."""

    @pytest.mark.asyncio
    async def test_email(self, service, outbox):
        """Should normalize the address and email the code."""
        sent = await service.send_otp(email="  Alice@Example.com ")

        assert sent.identifier == EMAIL
        assert sent.channel == Channel.EMAIL
        assert sent.message == "OTP sent successfully to email"
        assert len(outbox.outbox) == 1
        assert outbox.outbox[0]["to"] == EMAIL
        assert outbox.outbox[0]["subject"] == "Your Acme Login OTP"
        assert "1234" in outbox.outbox[0]["html"]

    @pytest.mark.asyncio
    async def test_phone(self, service, outbox, sms_provider):
        sent = await service.send_otp(phone="98765 43210", phone_code="+91")

        assert sent.identifier == PHONE
        assert sent.message == "OTP sent successfully to phone"
        assert sms_provider.initiated == [PHONE]
        assert outbox.outbox == []

    @pytest.mark.asyncio
    async def test_resend_message(self, service, clock):
        await service.send_otp(email=EMAIL)
        clock.advance(60)

        sent = await service.resend_otp(email=EMAIL)
        assert sent.message == "OTP resent successfully to email"

    @pytest.mark.asyncio
    async def test_resend_respects_cooldown(self, service, clock):
        await service.send_otp(email=EMAIL)
        clock.advance(30)

        with pytest.raises(CooldownError) as exc_info:
            await service.resend_otp(email=EMAIL)
        assert exc_info.value.retry_after == 30

    @pytest.mark.asyncio
    async def test_rate_guard(self, service, clock):
        """The fourth request inside the guard window is refused."""
        for _ in range(3):
            await service.send_otp(email=EMAIL)
            clock.advance(60)

        with pytest.raises(RateLimitError) as exc_info:
            await service.send_otp(email=EMAIL)
        assert exc_info.value.retry_after == 420

    @pytest.mark.asyncio
    async def test_email_failure_not_fatal(self, manager, users, clock):
        service = OTPAuthService(
            manager,
            SlidingWindowGuard(clock=clock.timestamp),
            users,
            SessionTokenIssuer("test-secret", clock=clock.timestamp),
            email_provider=FailingEmailProvider(),
        )

        sent = await service.send_otp(email=EMAIL)

        assert sent.identifier == EMAIL
        assert await manager.store.find_active(EMAIL, Channel.EMAIL) is not None

    @pytest.mark.asyncio
    async def test_invalid_identifier(self, service):
        with pytest.raises(ValidationError):
            await service.send_otp()
        with pytest.raises(ValidationError):
            await service.send_otp(email="nope")


class TestVerifyOTP:
    """verify_otp, user creation and tokens."""

    @pytest.mark.asyncio
    async def test_registers_new_user(self, service, users, outbox):
        await service.send_otp(email=EMAIL)

        result = await service.verify_otp(email=EMAIL, otp="1234")

        assert result.is_new_user is True
        assert result.message == "Registration successful"
        assert result.user.email == EMAIL
        assert result.user.is_verified is True
        assert len(users) == 1
        assert outbox.outbox[-1]["subject"] == "Welcome to Acme"

        claims = service.authenticate(result.token)
        assert claims["userId"] == result.user.id
        assert claims["email"] == EMAIL
        assert claims["phone"] is None

    @pytest.mark.asyncio
    async def test_existing_user_logs_in(self, service, users, outbox, clock):
        await service.send_otp(email=EMAIL)
        first = await service.verify_otp(email=EMAIL, otp="1234")
        clock.advance(60)
        await service.send_otp(email=EMAIL)

        second = await service.verify_otp(email=EMAIL, otp=1234)

        assert second.is_new_user is False
        assert second.message == "Login successful"
        assert second.user.id == first.user.id
        assert len(users) == 1
        welcome = [m for m in outbox.outbox if m["subject"].startswith("Welcome")]
        assert len(welcome) == 1

    @pytest.mark.asyncio
    async def test_phone_login(self, service, outbox):
        await service.send_otp(phone="9876543210", phone_code="+91")

        result = await service.verify_otp(phone="9876543210", phone_code="+91", otp="1234")

        assert result.user.phone == PHONE
        assert result.user.email is None
        assert outbox.outbox == []

    @pytest.mark.asyncio
    async def test_wrong_code(self, service):
        await service.send_otp(email=EMAIL)

        with pytest.raises(InvalidCodeError) as exc_info:
            await service.verify_otp(email=EMAIL, otp="9999")
        assert exc_info.value.attempts_remaining == 2

    @pytest.mark.asyncio
    async def test_code_shape(self, service):
        with pytest.raises(ValidationError, match="OTP is required"):
            await service.verify_otp(email=EMAIL)
        with pytest.raises(ValidationError, match="digits only"):
            await service.verify_otp(email=EMAIL, otp="12a4")
        with pytest.raises(ValidationError, match="4 digits"):
            await service.verify_otp(email=EMAIL, otp="123")
        with pytest.raises(ValidationError, match="4 digits"):
            await service.verify_otp(email=EMAIL, otp="12345")

    @pytest.mark.asyncio
    async def test_concurrent_first_login(self, manager, clock):
        users = RacingUserDirectory()
        service = OTPAuthService(
            manager,
            SlidingWindowGuard(clock=clock.timestamp),
            users,
            SessionTokenIssuer("test-secret", clock=clock.timestamp),
        )
        await service.send_otp(email=EMAIL)

        result = await service.verify_otp(email=EMAIL, otp="1234")

        assert result.is_new_user is False
        assert len(users) == 1


class TestProfile:
    """get_profile and update_profile."""

    @pytest.fixture
    async def user(self, users):
        return await users.create(User.new(email=EMAIL, is_verified=True))

    @pytest.mark.asyncio
    async def test_get_unknown(self, service):
        with pytest.raises(UserNotFoundError):
            await service.get_profile("missing")

    @pytest.mark.asyncio
    async def test_update_fullname_completes_profile(self, service, user):
        updated = await service.update_profile(user.id, fullname="  Alice  ")

        assert updated.fullname == "Alice"
        assert updated.profile_completed is True
        assert (await service.get_profile(user.id)).profile_completed is True

    @pytest.mark.asyncio
    async def test_update_contact_and_courses(self, service, user):
        updated = await service.update_profile(
            user.id,
            phone="+91 98765 43210",
            profile={"current_course": "Physics", "enrolled_course": None},
        )

        assert updated.phone == PHONE
        assert updated.profile == {"current_course": "Physics"}
        assert updated.profile_completed is False
        assert updated.to_dict()["profile"] == {"currentCourse": "Physics"}

    @pytest.mark.asyncio
    async def test_nothing_to_update(self, service, user):
        with pytest.raises(ValidationError, match="No profile data provided"):
            await service.update_profile(user.id)

    @pytest.mark.asyncio
    async def test_bad_values(self, service, user):
        with pytest.raises(ValidationError):
            await service.update_profile(user.id, email="not-an-email")
        with pytest.raises(ValidationError):
            await service.update_profile(user.id, phone="12")
        with pytest.raises(ValidationError):
            await service.update_profile(user.id, profile={"role": "admin"})

    @pytest.mark.asyncio
    async def test_email_taken(self, service, users, user):
        other = await users.create(User.new(email="bob@example.com"))

        with pytest.raises(ConflictError):
            await service.update_profile(other.id, email=EMAIL)
