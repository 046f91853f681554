"""
Channel Strategies
==================
Per-channel issue/check behaviour for OTP challenges.

Email codes are generated here, stored as a bcrypt hash and checked locally.
SMS codes are generated, delivered and checked by a delegated verification
provider; only its opaque handle is kept.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import structlog

from otpauth_core.errors import ConfigurationError, ProviderError
from otpauth_core.providers.base import VerificationProvider
from .hashing import BCRYPT_ROUNDS, generate_code, hash_code, verify_code
from .models import ChallengeSecret, Channel, EmailSecret, OTPConfig, OTPRecord, SmsHandle

logger = structlog.get_logger(__name__)


class ChannelStrategy(ABC):
    """Issue and check challenges for one channel."""

    channel: Channel

    @abstractmethod
    async def issue(self, identifier: str) -> Tuple[ChallengeSecret, Optional[str]]:
        """
        Start a challenge.

        Returns:
            Tuple of (secret to store, plaintext code or None)
        """

    @abstractmethod
    async def check(self, record: OTPRecord, code: str) -> bool:
        """True if ``code`` answers the challenge in ``record``."""


class EmailChannel(ChannelStrategy):
    """Locally generated codes, verified against a bcrypt hash."""

    channel = Channel.EMAIL

    def __init__(
        self,
        config: OTPConfig,
        rng: Optional[random.Random] = None,
        rounds: int = BCRYPT_ROUNDS,
    ):
        self.config = config
        self.rounds = rounds
        if rng is None and config.secure_random:
            rng = random.SystemRandom()
        self._rng = rng

    async def issue(self, identifier):
        code = generate_code(self.config.length, self._rng)
        loop = asyncio.get_running_loop()
        # CPU bound
        secret_hash = await loop.run_in_executor(None, hash_code, code, self.rounds)
        return EmailSecret(secret_hash=secret_hash), code

    async def check(self, record, code):
        if not isinstance(record.secret, EmailSecret):
            raise TypeError(f"Email channel cannot check a {record.channel.value} record")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, verify_code, code, record.secret.secret_hash
        )


class SmsChannel(ChannelStrategy):
    """Delegated verification; provider calls run under explicit timeouts."""

    channel = Channel.SMS

    def __init__(
        self,
        provider: VerificationProvider,
        initiate_timeout: float = 15.0,
        confirm_timeout: float = 10.0,
    ):
        self.provider = provider
        self.initiate_timeout = initiate_timeout
        self.confirm_timeout = confirm_timeout

    async def issue(self, identifier):
        try:
            initiation = await asyncio.wait_for(
                self.provider.initiate(identifier), timeout=self.initiate_timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(
                "sms_channel.initiate_timeout",
                provider=self.provider.name,
                timeout=self.initiate_timeout,
            )
            raise ProviderError(provider=self.provider.name, details="timeout") from e
        return SmsHandle(verification_handle=initiation.verification_handle), None

    async def check(self, record, code):
        if not isinstance(record.secret, SmsHandle):
            raise TypeError(f"SMS channel cannot check a {record.channel.value} record")
        try:
            return await asyncio.wait_for(
                self.provider.confirm(
                    record.identifier, record.secret.verification_handle, code
                ),
                timeout=self.confirm_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                "sms_channel.confirm_timeout",
                provider=self.provider.name,
                timeout=self.confirm_timeout,
            )
            raise ProviderError(provider=self.provider.name, details="timeout") from e


class ChannelRegistry:
    """Looks up the strategy for a channel or for a stored secret."""

    def __init__(self, *strategies: ChannelStrategy):
        self._strategies: Dict[Channel, ChannelStrategy] = {
            s.channel: s for s in strategies
        }

    def for_channel(self, channel: Channel) -> ChannelStrategy:
        strategy = self._strategies.get(channel)
        if strategy is None:
            raise ConfigurationError(f"{channel.value.upper()} OTP is not configured")
        return strategy

    def for_secret(self, secret: ChallengeSecret) -> ChannelStrategy:
        if isinstance(secret, EmailSecret):
            return self.for_channel(Channel.EMAIL)
        if isinstance(secret, SmsHandle):
            return self.for_channel(Channel.SMS)
        raise TypeError(f"Unknown challenge secret: {type(secret).__name__}")
