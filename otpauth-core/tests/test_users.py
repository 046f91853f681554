"""
Unit Tests for the User Directories
===================================
"""

import pytest

from otpauth_core.errors import ConflictError, ValidationError
from otpauth_core.otp import Channel
from otpauth_core.sql_users import SQLAlchemyUserDirectory
from otpauth_core.users import InMemoryUserDirectory, User

from conftest import T0


@pytest.fixture(params=["memory", "sqlalchemy"])
async def directory(request, tmp_path):
    if request.param == "memory":
        yield InMemoryUserDirectory()
        return
    users = SQLAlchemyUserDirectory.from_url(f"sqlite+aiosqlite:///{tmp_path / 'users.db'}")
    await users.create_schema()
    yield users
    await users.close()


class TestUser:
    """User entity."""

    def test_new_requires_identifier(self):
        with pytest.raises(ValidationError):
            User.new()

    def test_to_dict(self):
        user = User(
            id="u1",
            email="a@example.com",
            fullname="Alice",
            profile={"enrolled_course": "Maths"},
            created_at=T0,
            updated_at=T0,
        )

        assert user.to_dict() == {
            "id": "u1",
            "fullname": "Alice",
            "email": "a@example.com",
            "phone": None,
            "profileCompleted": False,
            "isVerified": False,
            "profile": {"enrolledCourse": "Maths"},
            "createdAt": "2026-01-01T12:00:00+00:00",
            "updatedAt": "2026-01-01T12:00:00+00:00",
        }

    def test_completed_profile(self):
        assert User.new(email="a@example.com", fullname=" ").has_completed_profile() is False
        assert User.new(email="a@example.com", fullname="Al").has_completed_profile() is True


class TestDirectory:
    """Behaviour shared by both directories."""

    @pytest.mark.asyncio
    async def test_create_and_lookup(self, directory):
        user = await directory.create(User.new(email="a@example.com", is_verified=True))

        by_id = await directory.get(user.id)
        assert by_id.email == "a@example.com"
        assert by_id.is_verified is True
        assert (await directory.find_by_email("a@example.com")).id == user.id
        assert (await directory.find_by_identifier("a@example.com", Channel.EMAIL)).id == user.id
        assert await directory.find_by_phone("+919876543210") is None
        assert await directory.get("missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_email(self, directory):
        await directory.create(User.new(email="a@example.com"))

        with pytest.raises(ConflictError):
            await directory.create(User.new(email="a@example.com"))

    @pytest.mark.asyncio
    async def test_duplicate_phone(self, directory):
        await directory.create(User.new(phone="+919876543210"))

        with pytest.raises(ConflictError):
            await directory.create(User.new(phone="+919876543210"))

    @pytest.mark.asyncio
    async def test_phone_only_users_coexist(self, directory):
        await directory.create(User.new(phone="+919876543210"))
        await directory.create(User.new(phone="+919876543211"))

        found = await directory.find_by_identifier("+919876543211", Channel.SMS)
        assert found.email is None

    @pytest.mark.asyncio
    async def test_save(self, directory):
        user = await directory.create(User.new(email="a@example.com"))
        user.fullname = "Alice"
        user.profile_completed = True
        user.profile["current_course"] = "Physics"

        saved = await directory.save(user)

        assert saved.updated_at >= user.created_at
        stored = await directory.get(user.id)
        assert stored.fullname == "Alice"
        assert stored.profile_completed is True
        assert stored.profile == {"current_course": "Physics"}

    @pytest.mark.asyncio
    async def test_save_conflict(self, directory):
        await directory.create(User.new(email="a@example.com"))
        bob = await directory.create(User.new(email="b@example.com"))
        bob.email = "a@example.com"

        with pytest.raises(ConflictError):
            await directory.save(bob)
        assert (await directory.get(bob.id)).email == "b@example.com"

    @pytest.mark.asyncio
    async def test_returns_copies(self, directory):
        user = await directory.create(User.new(email="a@example.com"))
        fetched = await directory.get(user.id)
        fetched.profile["current_course"] = "changed"

        assert (await directory.get(user.id)).profile == {}
