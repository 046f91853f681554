"""
Users
=====
User entity and the directory the auth service reads and writes.

A user is identified by email, phone or both; each is unique across users.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from otpauth_core.errors import ConflictError, ValidationError
from otpauth_core.otp.models import Channel

logger = structlog.get_logger(__name__)

# snake_case attribute -> camelCase wire name
PROFILE_FIELDS = {
    "current_course": "currentCourse",
    "enrolled_course": "enrolledCourse",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    id: str
    email: Optional[str] = None
    phone: Optional[str] = None
    fullname: str = ""
    is_verified: bool = False
    profile_completed: bool = False
    profile: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def new(cls, email: Optional[str] = None, phone: Optional[str] = None, **kwargs) -> "User":
        if not email and not phone:
            raise ValidationError("User must have either email or phone", field="identifier")
        return cls(id=str(uuid.uuid4()), email=email, phone=phone, **kwargs)

    def has_completed_profile(self) -> bool:
        return bool(self.fullname and self.fullname.strip())

    def copy(self) -> "User":
        return replace(self, profile=dict(self.profile))

    def to_dict(self) -> Dict[str, Any]:
        """Public representation used in API responses."""
        return {
            "id": self.id,
            "fullname": self.fullname,
            "email": self.email,
            "phone": self.phone,
            "profileCompleted": self.profile_completed,
            "isVerified": self.is_verified,
            "profile": {
                wire: self.profile.get(attr)
                for attr, wire in PROFILE_FIELDS.items()
                if self.profile.get(attr) is not None
            },
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


class UserDirectory(ABC):
    """Abstract async user persistence."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[User]:
        """Look up a user by id."""

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[User]:
        """Look up a user by normalized email."""

    @abstractmethod
    async def find_by_phone(self, phone: str) -> Optional[User]:
        """Look up a user by normalized phone."""

    @abstractmethod
    async def create(self, user: User) -> User:
        """
        Insert a new user.

        Raises:
            ConflictError: email or phone already taken
        """

    @abstractmethod
    async def save(self, user: User) -> User:
        """
        Persist changes to an existing user and bump ``updated_at``.

        Raises:
            ConflictError: email or phone taken by another user
        """

    async def find_by_identifier(self, identifier: str, channel: Channel) -> Optional[User]:
        if channel == Channel.EMAIL:
            return await self.find_by_email(identifier)
        return await self.find_by_phone(identifier)

    async def close(self) -> None:
        pass


class InMemoryUserDirectory(UserDirectory):
    """Process-local directory for development and tests."""

    def __init__(self):
        self._users: Dict[str, User] = {}

    def __len__(self) -> int:
        return len(self._users)

    def _find(self, attr: str, value: str, exclude_id: Optional[str] = None) -> Optional[User]:
        for user in self._users.values():
            if user.id != exclude_id and getattr(user, attr) == value:
                return user
        return None

    def _check_unique(self, user: User) -> None:
        if user.email and self._find("email", user.email, exclude_id=user.id):
            raise ConflictError("Email already in use")
        if user.phone and self._find("phone", user.phone, exclude_id=user.id):
            raise ConflictError("Phone number already in use")

    async def get(self, user_id):
        user = self._users.get(user_id)
        return user.copy() if user else None

    async def find_by_email(self, email):
        user = self._find("email", email)
        return user.copy() if user else None

    async def find_by_phone(self, phone):
        user = self._find("phone", phone)
        return user.copy() if user else None

    async def create(self, user):
        if user.id in self._users:
            raise ConflictError("User already exists")
        self._check_unique(user)
        self._users[user.id] = user.copy()
        logger.info("user.created", user_id=user.id)
        return user.copy()

    async def save(self, user):
        if user.id not in self._users:
            return await self.create(user)
        self._check_unique(user)
        user.updated_at = utcnow()
        self._users[user.id] = user.copy()
        return user.copy()

    def all(self) -> List[User]:
        return [u.copy() for u in self._users.values()]
