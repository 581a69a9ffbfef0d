"""Tests for UserRepository.

Covers lookups, email normalisation and uniqueness, and field updates.
"""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.errors import ConstraintViolation
from authcore.repositories.user_repository import UserRepository, normalize_email
from tests.conftest import T0, TEST_EMAIL

_MISSING_UUID = uuid.UUID("99999999-9999-9999-9999-999999999999")


class TestNormalizeEmail:
    """Test normalize_email()."""

    def test_strips_and_lowercases(self):
        """Stored form is trimmed lowercase."""
        assert normalize_email("  Alice@Example.COM ") == "alice@example.com"


class TestGetById:
    """Test UserRepository.get_by_id()."""

    async def test_returns_user_when_found(self, db_session: AsyncSession, test_user):
        """Existing user is returned by ID."""
        user = await UserRepository.get_by_id(db_session, test_user.id)
        assert user is not None
        assert user.email == TEST_EMAIL

    async def test_returns_none_when_not_found(self, db_session: AsyncSession):
        """Non-existent ID returns None."""
        assert await UserRepository.get_by_id(db_session, _MISSING_UUID) is None

    async def test_for_update_returns_user(self, db_session: AsyncSession, test_user):
        """Locked read returns the same row."""
        user = await UserRepository.get_by_id(
            db_session, test_user.id, for_update=True
        )
        assert user is not None
        assert user.id == test_user.id


class TestGetByEmail:
    """Test UserRepository.get_by_email()."""

    async def test_lookup_is_case_insensitive(
        self, db_session: AsyncSession, test_user
    ):
        """Email lookup ignores case and surrounding whitespace."""
        user = await UserRepository.get_by_email(db_session, " TEST@Example.com")
        assert user is not None
        assert user.id == test_user.id

    async def test_returns_none_when_not_found(self, db_session: AsyncSession):
        """Unknown email returns None."""
        user = await UserRepository.get_by_email(db_session, "nobody@example.com")
        assert user is None


class TestEmailTaken:
    """Test UserRepository.email_taken()."""

    async def test_taken_by_other_user(self, db_session: AsyncSession, test_user):
        """Another user's address is taken, regardless of case."""
        assert await UserRepository.email_taken(db_session, "Test@Example.com")

    async def test_own_address_excluded(self, db_session: AsyncSession, test_user):
        """A user's own address is not taken from their point of view."""
        assert not await UserRepository.email_taken(
            db_session, TEST_EMAIL, exclude_user_id=test_user.id
        )


class TestCreate:
    """Test UserRepository.create()."""

    async def test_creates_user(self, db_session: AsyncSession):
        """Creation normalises email and fills server-side fields."""
        user = await UserRepository.create(
            db_session, email="New@Example.com", hashed_password="$2b$04$fake"
        )
        assert user.id is not None
        assert user.email == "new@example.com"
        assert user.hashed_password == "$2b$04$fake"
        assert user.confirmed_at is None
        assert user.created_at is not None
        assert user.authenticated_at is None

    async def test_duplicate_email_differing_in_case(
        self, db_session: AsyncSession, test_user
    ):
        """Unique constraint applies to the normalised form."""
        with pytest.raises(ConstraintViolation) as exc_info:
            await UserRepository.create(db_session, email="TEST@EXAMPLE.COM")
        assert exc_info.value.field == "email"

    async def test_repr_hides_password_hash(self, db_session: AsyncSession):
        """repr() never includes the password hash."""
        user = await UserRepository.create(
            db_session, email="r@example.com", hashed_password="$2b$04$secret"
        )
        assert "secret" not in repr(user)
        assert "r@example.com" in repr(user)


class TestUpdate:
    """Test UserRepository.update()."""

    async def test_updates_fields(self, db_session: AsyncSession, test_user):
        """Allowed fields are written and email is normalised."""
        user = await UserRepository.update(
            db_session,
            test_user,
            email="Changed@Example.com",
            confirmed_at=T0,
        )
        assert user.email == "changed@example.com"
        assert user.confirmed_at == T0

    async def test_rejects_unknown_fields(self, db_session: AsyncSession, test_user):
        """Fields outside the allow-list raise ValueError."""
        with pytest.raises(ValueError, match="Unknown fields: id"):
            await UserRepository.update(db_session, test_user, id="x")

    async def test_email_collision(self, db_session: AsyncSession, test_user):
        """Moving onto another user's address raises ConstraintViolation."""
        await UserRepository.create(db_session, email="other@example.com")
        with pytest.raises(ConstraintViolation):
            await UserRepository.update(
                db_session, test_user, email="OTHER@example.com"
            )
