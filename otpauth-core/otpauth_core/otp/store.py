"""
OTP Record Store
================
Keyed persistence of in-flight OTP challenges.

A store keeps at most one live challenge per identifier: ``upsert_challenge``
replaces every prior record for the identifier, across channels, as a single
step that no concurrent caller can interleave with.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import structlog

from otpauth_core.otp.models import ChallengeSecret, Channel, OTPRecord
from otpauth_core.tasks import KeyedLock

logger = structlog.get_logger(__name__)


class OTPRecordStore(ABC):
    """Abstract async store of OTP challenges."""

    @abstractmethod
    async def upsert_challenge(
        self,
        identifier: str,
        channel: Channel,
        secret: ChallengeSecret,
        ttl: timedelta,
        now: datetime,
    ) -> OTPRecord:
        """Delete all records for ``identifier`` and insert a fresh one."""

    @abstractmethod
    async def find_active(self, identifier: str, channel: Channel) -> Optional[OTPRecord]:
        """Most recently created record for the identifier and channel."""

    @abstractmethod
    async def increment_attempts(
        self,
        record_id: str,
        limit: Optional[int] = None,
    ) -> Optional[int]:
        """
        Atomically bump ``attempts``, never past ``limit`` when given.

        Returns the resulting count, or None if the record is gone.
        """

    @abstractmethod
    async def delete(self, record_id: str) -> bool:
        """Delete one record by identity."""

    @abstractmethod
    async def delete_all(self, identifier: str) -> int:
        """Delete every record for an identifier."""

    @abstractmethod
    async def latest_challenge(
        self,
        identifier: str,
        window: timedelta,
        now: datetime,
    ) -> Optional[OTPRecord]:
        """Newest record (any channel) created within ``window`` of ``now``."""

    @abstractmethod
    async def cleanup_expired(self, now: datetime) -> int:
        """Delete records whose ``expires_at`` is before ``now``."""

    async def has_recent_challenge(
        self,
        identifier: str,
        window: timedelta,
        now: datetime,
    ) -> bool:
        return await self.latest_challenge(identifier, window, now) is not None

    async def close(self) -> None:
        pass


class InMemoryOTPStore(OTPRecordStore):
    """
    Process-local store.

    For development, tests and single-process deployments. Expired records
    are only removed by ``cleanup_expired`` or when they are superseded.
    """

    def __init__(self):
        self._records: Dict[str, OTPRecord] = {}
        self._by_identifier: Dict[str, List[str]] = {}
        self._locks = KeyedLock()
        self._counter_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def _remove(self, record_id: str) -> bool:
        record = self._records.pop(record_id, None)
        if record is None:
            return False
        ids = self._by_identifier.get(record.identifier, [])
        if record_id in ids:
            ids.remove(record_id)
        if not ids:
            self._by_identifier.pop(record.identifier, None)
        return True

    def _records_for(self, identifier: str) -> List[OTPRecord]:
        return [self._records[i] for i in self._by_identifier.get(identifier, [])]

    async def upsert_challenge(self, identifier, channel, secret, ttl, now):
        async with self._locks.acquire(identifier):
            for record_id in list(self._by_identifier.get(identifier, [])):
                self._remove(record_id)

            record = OTPRecord(
                id=str(uuid.uuid4()),
                identifier=identifier,
                channel=channel,
                secret=secret,
                expires_at=now + ttl,
                created_at=now,
                attempts=0,
            )
            self._records[record.id] = record
            self._by_identifier.setdefault(identifier, []).append(record.id)
            return record.copy()

    async def find_active(self, identifier, channel):
        candidates = [r for r in self._records_for(identifier) if r.channel == channel]
        if not candidates:
            return None
        return max(candidates, key=lambda r: r.created_at).copy()

    async def increment_attempts(self, record_id, limit=None):
        async with self._counter_lock:
            record = self._records.get(record_id)
            if record is None:
                return None
            if limit is not None and record.attempts >= limit:
                return record.attempts
            record.attempts += 1
            return record.attempts

    async def delete(self, record_id):
        return self._remove(record_id)

    async def delete_all(self, identifier):
        async with self._locks.acquire(identifier):
            ids = list(self._by_identifier.get(identifier, []))
            for record_id in ids:
                self._remove(record_id)
            return len(ids)

    async def latest_challenge(self, identifier, window, now):
        cutoff = now - window
        recent = [r for r in self._records_for(identifier) if r.created_at > cutoff]
        if not recent:
            return None
        return max(recent, key=lambda r: r.created_at).copy()

    async def cleanup_expired(self, now):
        expired = [r.id for r in list(self._records.values()) if r.expires_at < now]
        removed = sum(1 for record_id in expired if self._remove(record_id))
        if removed:
            logger.info("otp_store.cleanup", removed=removed)
        return removed
