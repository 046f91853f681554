"""
SQLAlchemy User Directory
=========================
``users`` table and the async directory on top of it.
"""

from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import JSON, Boolean, DateTime, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import Mapped, mapped_column

from otpauth_core.database import (
    Base,
    close_engine,
    create_async_engine,
    create_schema,
    create_session_factory,
    from_naive_utc,
    session_scope,
    to_naive_utc,
)
from otpauth_core.errors import ConflictError
from otpauth_core.users import User, UserDirectory, utcnow

logger = structlog.get_logger(__name__)


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), unique=True, nullable=True)
    fullname: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    profile_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    profile: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


def _to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        phone=row.phone,
        fullname=row.fullname or "",
        is_verified=row.is_verified,
        profile_completed=row.profile_completed,
        profile=dict(row.profile or {}),
        created_at=from_naive_utc(row.created_at),
        updated_at=from_naive_utc(row.updated_at),
    )


def _apply(row: UserRow, user: User) -> None:
    row.email = user.email
    row.phone = user.phone
    row.fullname = user.fullname
    row.is_verified = user.is_verified
    row.profile_completed = user.profile_completed
    row.profile = dict(user.profile)
    row.created_at = to_naive_utc(user.created_at)
    row.updated_at = to_naive_utc(user.updated_at)


def _conflict(user: User) -> ConflictError:
    # The backend does not say which constraint failed in a portable way
    if user.email and user.phone:
        return ConflictError("Email or phone number already in use")
    if user.email:
        return ConflictError("Email already in use")
    return ConflictError("Phone number already in use")


class SQLAlchemyUserDirectory(UserDirectory):
    """User directory backed by any async SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine, owns_engine: bool = False):
        self.engine = engine
        self._owns_engine = owns_engine
        self._session_factory = create_session_factory(engine)

    @classmethod
    def from_url(cls, database_url: str, **engine_kwargs) -> "SQLAlchemyUserDirectory":
        return cls(create_async_engine(database_url, **engine_kwargs), owns_engine=True)

    async def create_schema(self) -> None:
        await create_schema(self.engine)

    async def close(self) -> None:
        if self._owns_engine:
            await close_engine(self.engine)

    async def _one(self, stmt) -> Optional[User]:
        async with self._session_factory() as session:
            row = await session.scalar(stmt)
            return _to_user(row) if row is not None else None

    async def get(self, user_id):
        return await self._one(select(UserRow).where(UserRow.id == user_id))

    async def find_by_email(self, email):
        return await self._one(select(UserRow).where(UserRow.email == email))

    async def find_by_phone(self, phone):
        return await self._one(select(UserRow).where(UserRow.phone == phone))

    async def create(self, user):
        row = UserRow(id=user.id)
        _apply(row, user)
        try:
            async with session_scope(self._session_factory) as session:
                session.add(row)
        except IntegrityError as e:
            raise _conflict(user) from e
        logger.info("user.created", user_id=user.id)
        return user.copy()

    async def save(self, user):
        user.updated_at = utcnow()
        try:
            async with session_scope(self._session_factory) as session:
                row = await session.get(UserRow, user.id)
                if row is None:
                    row = UserRow(id=user.id)
                    session.add(row)
                _apply(row, user)
        except IntegrityError as e:
            raise _conflict(user) from e
        return user.copy()
