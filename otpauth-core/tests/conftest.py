"""
Shared Test Fixtures
====================
Deterministic clocks, code sources and a scripted verification provider.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from otpauth_core.errors import ProviderError
from otpauth_core.otp import InMemoryOTPStore, OTPConfig, OTPLifecycleManager
from otpauth_core.providers.base import Initiation, VerificationProvider

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Aware UTC clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)

    def timestamp(self) -> float:
        return self.now.timestamp()


class SequenceRandom:
    """Stand-in for ``random.Random`` that yields preset integers."""

    def __init__(self, *values: int):
        self.values = list(values)
        self.calls = 0

    def randint(self, low: int, high: int) -> int:
        value = self.values[min(self.calls, len(self.values) - 1)]
        self.calls += 1
        assert low <= value <= high
        return value


class ScriptedVerificationProvider(VerificationProvider):
    """Verification provider whose answers are set by the test."""

    name = "scripted"

    def __init__(self, handles: Optional[List[str]] = None, valid_code: str = "1234"):
        super().__init__()
        self.handles = list(handles or ["H1"])
        self.valid_code = valid_code
        self.initiate_error: Optional[Exception] = None
        self.confirm_error: Optional[Exception] = None
        self.initiated: List[str] = []
        self.confirmed: List[tuple] = []

    async def initiate(self, phone):
        self.initiated.append(phone)
        if self.initiate_error is not None:
            raise self.initiate_error
        handle = self.handles[min(len(self.initiated) - 1, len(self.handles) - 1)]
        return Initiation(verification_handle=handle, timeout_seconds=60)

    async def confirm(self, phone, verification_handle, code):
        self.confirmed.append((phone, verification_handle, code))
        if self.confirm_error is not None:
            raise self.confirm_error
        return code == self.valid_code


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    return InMemoryOTPStore()


@pytest.fixture
def sms_provider():
    return ScriptedVerificationProvider()


@pytest.fixture
def otp_config():
    return OTPConfig()


@pytest.fixture
def manager(store, otp_config, sms_provider, clock):
    return OTPLifecycleManager(
        store,
        otp_config,
        verification_provider=sms_provider,
        clock=clock,
        rng=SequenceRandom(1234),
    )


@pytest.fixture
def provider_down():
    return ProviderError(provider="scripted", details="connection refused")
