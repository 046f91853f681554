"""
SQLAlchemy OTP Store
====================
Async SQLAlchemy implementation of the OTP record store.

Usage:
    store = SQLAlchemyOTPStore.from_url("postgresql+asyncpg://...")
    await store.create_schema()

The delete-then-insert of ``upsert_challenge`` runs in one transaction and
under a per-identifier lock, so concurrent sends in this process cannot
leave two live challenges behind.
"""

import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import DateTime, Index, Integer, String, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import Mapped, mapped_column

from otpauth_core.database import (
    Base,
    close_engine,
    create_async_engine,
    create_schema,
    create_session_factory,
    from_naive_utc,
    to_naive_utc,
)
from otpauth_core.otp.models import Channel, EmailSecret, OTPRecord, SmsHandle
from otpauth_core.otp.store import OTPRecordStore
from otpauth_core.tasks import KeyedLock

logger = structlog.get_logger(__name__)


class OTPChallengeRow(Base):
    __tablename__ = "otp_challenges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    channel: Mapped[str] = mapped_column(String(10), nullable=False)
    secret_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    verification_handle: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_otp_challenges_identifier_created", "identifier", "created_at"),
        Index("ix_otp_challenges_expires_at", "expires_at"),
    )


def _to_record(row: OTPChallengeRow) -> OTPRecord:
    channel = Channel(row.channel)
    if channel == Channel.EMAIL:
        secret = EmailSecret(secret_hash=row.secret_hash)
    else:
        secret = SmsHandle(verification_handle=row.verification_handle)
    return OTPRecord(
        id=row.id,
        identifier=row.identifier,
        channel=channel,
        secret=secret,
        expires_at=from_naive_utc(row.expires_at),
        created_at=from_naive_utc(row.created_at),
        attempts=row.attempts,
    )


class SQLAlchemyOTPStore(OTPRecordStore):
    """OTP store backed by any async SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine, owns_engine: bool = False):
        self.engine = engine
        self._owns_engine = owns_engine
        self._session_factory = create_session_factory(engine)
        self._locks = KeyedLock()

    @classmethod
    def from_url(cls, database_url: str, **engine_kwargs) -> "SQLAlchemyOTPStore":
        return cls(create_async_engine(database_url, **engine_kwargs), owns_engine=True)

    async def create_schema(self) -> None:
        """Create the ``otp_challenges`` table if missing."""
        await create_schema(self.engine)

    async def close(self) -> None:
        if self._owns_engine:
            await close_engine(self.engine)

    async def upsert_challenge(self, identifier, channel, secret, ttl, now):
        row = OTPChallengeRow(
            id=str(uuid.uuid4()),
            identifier=identifier,
            channel=channel.value,
            secret_hash=secret.secret_hash if isinstance(secret, EmailSecret) else None,
            verification_handle=(
                secret.verification_handle if isinstance(secret, SmsHandle) else None
            ),
            attempts=0,
            expires_at=to_naive_utc(now + ttl),
            created_at=to_naive_utc(now),
        )
        async with self._locks.acquire(identifier):
            async with self._session_factory.begin() as session:
                await session.execute(
                    delete(OTPChallengeRow).where(OTPChallengeRow.identifier == identifier)
                )
                session.add(row)
        return _to_record(row)

    async def find_active(self, identifier, channel):
        stmt = (
            select(OTPChallengeRow)
            .where(
                OTPChallengeRow.identifier == identifier,
                OTPChallengeRow.channel == channel.value,
            )
            .order_by(OTPChallengeRow.created_at.desc())
            .limit(1)
        )
        async with self._session_factory() as session:
            row = await session.scalar(stmt)
            return _to_record(row) if row is not None else None

    async def increment_attempts(self, record_id, limit=None):
        stmt = update(OTPChallengeRow).where(OTPChallengeRow.id == record_id)
        if limit is not None:
            stmt = stmt.where(OTPChallengeRow.attempts < limit)
        stmt = stmt.values(attempts=OTPChallengeRow.attempts + 1).execution_options(
            synchronize_session=False
        )
        async with self._session_factory.begin() as session:
            await session.execute(stmt)
            return await session.scalar(
                select(OTPChallengeRow.attempts).where(OTPChallengeRow.id == record_id)
            )

    async def delete(self, record_id):
        async with self._session_factory.begin() as session:
            result = await session.execute(
                delete(OTPChallengeRow).where(OTPChallengeRow.id == record_id)
            )
            return result.rowcount > 0

    async def delete_all(self, identifier):
        async with self._locks.acquire(identifier):
            async with self._session_factory.begin() as session:
                result = await session.execute(
                    delete(OTPChallengeRow).where(OTPChallengeRow.identifier == identifier)
                )
                return result.rowcount

    async def latest_challenge(self, identifier, window, now):
        stmt = (
            select(OTPChallengeRow)
            .where(
                OTPChallengeRow.identifier == identifier,
                OTPChallengeRow.created_at > to_naive_utc(now - window),
            )
            .order_by(OTPChallengeRow.created_at.desc())
            .limit(1)
        )
        async with self._session_factory() as session:
            row = await session.scalar(stmt)
            return _to_record(row) if row is not None else None

    async def cleanup_expired(self, now):
        # Row-level predicate: a re-created challenge has a fresh expires_at
        async with self._session_factory.begin() as session:
            result = await session.execute(
                delete(OTPChallengeRow).where(OTPChallengeRow.expires_at < to_naive_utc(now))
            )
        if result.rowcount:
            logger.info("otp_store.cleanup", removed=result.rowcount)
        return result.rowcount

    async def count(self) -> int:
        async with self._session_factory() as session:
            return await session.scalar(select(func.count()).select_from(OTPChallengeRow))
