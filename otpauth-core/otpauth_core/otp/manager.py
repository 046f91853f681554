"""
OTP Lifecycle Manager
=====================
Issue, verify, expire and sweep OTP challenges.

States per identifier::

    NoChallenge -> Pending -> Verified | Expired | Exhausted

Every terminal state deletes the record. A new request while Pending
replaces the challenge (after the cooldown).

Usage:
    manager = OTPLifecycleManager(store, OTPConfig(), verification_provider=sms)
    issued = await manager.request_challenge("a@example.com", Channel.EMAIL)
    await manager.submit_verification("a@example.com", Channel.EMAIL, issued.code)
"""

import math
import random
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog

from otpauth_core.errors import (
    CooldownError,
    ExhaustedError,
    ExpiredError,
    InvalidCodeError,
    NotFoundError,
)
from otpauth_core.logging_config import mask_identifier
from otpauth_core.providers.base import VerificationProvider
from otpauth_core.tasks import KeyedLock
from .channels import ChannelRegistry, EmailChannel, SmsChannel
from .models import ChallengeIssued, Channel, OTPConfig, VerificationResult
from .store import OTPRecordStore

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]

SMS_CONFIRM_TIMEOUT_SECONDS = 10.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OTPLifecycleManager:
    """
    Orchestrates the store and the channel strategies.

    The manager never delivers email itself; ``request_challenge`` hands the
    plaintext code back to the caller.
    """

    def __init__(
        self,
        store: OTPRecordStore,
        config: Optional[OTPConfig] = None,
        verification_provider: Optional[VerificationProvider] = None,
        clock: Clock = utcnow,
        rng: Optional[random.Random] = None,
        channels: Optional[ChannelRegistry] = None,
    ):
        """
        Args:
            store: Record store
            config: Lifecycle settings, defaults to OTPConfig()
            verification_provider: Delegated SMS provider; SMS is disabled without it
            clock: Returns the current aware UTC datetime
            rng: Random source for email codes
            channels: Pre-built strategies, overrides the two arguments above
        """
        self.store = store
        self.config = config or OTPConfig()
        self._clock = clock
        if channels is None:
            strategies = [EmailChannel(self.config, rng=rng)]
            if verification_provider is not None:
                strategies.append(
                    SmsChannel(
                        verification_provider,
                        initiate_timeout=self.config.provider_timeout_seconds,
                        confirm_timeout=min(
                            SMS_CONFIRM_TIMEOUT_SECONDS,
                            self.config.provider_timeout_seconds,
                        ),
                    )
                )
            channels = ChannelRegistry(*strategies)
        self.channels = channels
        self._send_locks = KeyedLock()
        self._verify_locks = KeyedLock()

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self.config.expiry_seconds)

    @property
    def cooldown(self) -> timedelta:
        return timedelta(seconds=self.config.cooldown_seconds)

    async def request_challenge(self, identifier: str, channel: Channel) -> ChallengeIssued:
        """
        Issue a new challenge, replacing any earlier one for the identifier.

        Args:
            identifier: Normalized email or phone
            channel: Channel to issue on

        Returns:
            ChallengeIssued; ``code`` is set for email only

        Raises:
            CooldownError: A challenge was issued within the cooldown
            ProviderError: SMS provider failed or timed out; nothing is stored
        """
        strategy = self.channels.for_channel(channel)

        async with self._send_locks.acquire(identifier):
            now = self._clock()
            if self.config.cooldown_seconds > 0:
                latest = await self.store.latest_challenge(identifier, self.cooldown, now)
                if latest is not None:
                    elapsed = (now - latest.created_at).total_seconds()
                    retry_after = max(1, math.ceil(self.config.cooldown_seconds - elapsed))
                    logger.info(
                        "otp.cooldown",
                        identifier=mask_identifier(identifier),
                        retry_after=retry_after,
                    )
                    raise CooldownError(retry_after=retry_after)

            secret, code = await strategy.issue(identifier)
            # Provider round trips take time; the record's clock starts now
            record = await self.store.upsert_challenge(
                identifier, channel, secret, self.ttl, self._clock()
            )

        logger.info(
            "otp.issued",
            identifier=mask_identifier(identifier),
            channel=channel.value,
            record_id=record.id,
            expires_in=self.config.expiry_seconds,
        )
        return ChallengeIssued(
            record_id=record.id,
            identifier=identifier,
            channel=channel,
            expires_at=record.expires_at,
            code=code,
        )

    async def submit_verification(
        self,
        identifier: str,
        channel: Channel,
        code: str,
    ) -> VerificationResult:
        """
        Check a candidate code against the active challenge.

        Expiry is checked before the attempt count. A record that reached
        the attempt limit on an earlier failure is removed here. Checks for
        one identifier are serialized.

        Raises:
            NotFoundError: No active challenge
            ExpiredError: Challenge expired (record deleted)
            ExhaustedError: Attempt limit reached (record deleted)
            InvalidCodeError: Wrong code; carries attempts remaining
            ProviderError: SMS provider unreachable; no attempt consumed
        """
        async with self._verify_locks.acquire(identifier):
            return await self._verify(identifier, channel, str(code))

    async def _verify(
        self, identifier: str, channel: Channel, code: str
    ) -> VerificationResult:
        masked = mask_identifier(identifier)
        record = await self.store.find_active(identifier, channel)
        if record is None:
            raise NotFoundError()

        now = self._clock()
        if record.is_expired(now):
            await self.store.delete(record.id)
            logger.info("otp.expired", identifier=masked, record_id=record.id)
            raise ExpiredError()

        if record.is_exhausted(self.config.max_attempts):
            await self.store.delete(record.id)
            logger.warning("otp.exhausted", identifier=masked, record_id=record.id)
            raise ExhaustedError()

        strategy = self.channels.for_secret(record.secret)
        matched = await strategy.check(record, code)

        if not matched:
            attempts = await self.store.increment_attempts(
                record.id, limit=self.config.max_attempts
            )
            if attempts is None:
                # Superseded or swept while we were checking
                raise NotFoundError()
            remaining = max(0, self.config.max_attempts - attempts)
            logger.warning(
                "otp.invalid_code",
                identifier=masked,
                record_id=record.id,
                attempts=attempts,
                remaining=remaining,
            )
            raise InvalidCodeError(attempts_remaining=remaining)

        if not await self.store.delete(record.id):
            # Superseded while we were checking
            raise NotFoundError()

        verified_at = self._clock()
        logger.info(
            "otp.verified",
            identifier=masked,
            channel=channel.value,
            record_id=record.id,
        )
        return VerificationResult(
            identifier=identifier, channel=channel, verified_at=verified_at
        )

    async def cleanup_expired(self) -> int:
        """Delete expired records. Safe to run alongside everything else."""
        return await self.store.cleanup_expired(self._clock())
