"""Tests for UserTokenRepository.

Covers insertion, (hash, context) uniqueness, age-filtered lookups,
deletes and cascade on user removal.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.errors import ConstraintViolation
from authcore.models import UserToken
from authcore.repositories.user_token_repository import UserTokenRepository
from tests.conftest import T0

_HASH = "a" * 64
_OTHER_HASH = "b" * 64
_DAY = timedelta(days=1)


async def _insert(db, user, token_hash=_HASH, context="session", created_at=T0, **kw):
    return await UserTokenRepository.insert(
        db,
        user_id=user.id,
        token_hash=token_hash,
        context=context,
        created_at=created_at,
        **kw,
    )


class TestInsert:
    """Test UserTokenRepository.insert()."""

    async def test_stores_token(self, db_session: AsyncSession, test_user):
        """Inserted token carries all given fields."""
        token = await _insert(
            db_session, test_user, context="change:test@example.com", sent_to="n@x.io"
        )
        assert token.id is not None
        assert token.sent_to == "n@x.io"
        assert token.created_at == T0

    async def test_duplicate_hash_and_context(
        self, db_session: AsyncSession, test_user
    ):
        """Same (hash, context) twice violates the unique constraint."""
        await _insert(db_session, test_user)
        with pytest.raises(ConstraintViolation):
            await _insert(db_session, test_user)

    async def test_same_hash_other_context(self, db_session: AsyncSession, test_user):
        """Uniqueness is per context."""
        await _insert(db_session, test_user, context="session")
        token = await _insert(db_session, test_user, context="login")
        assert token.context == "login"


class TestFind:
    """Test find_by_hash_and_context() and find_session()."""

    async def test_age_window_is_exclusive(self, db_session: AsyncSession, test_user):
        """A token exactly max_age old is already expired."""
        await _insert(db_session, test_user, context="login")
        found = await UserTokenRepository.find_by_hash_and_context(
            db_session,
            token_hash=_HASH,
            context="login",
            max_age=_DAY,
            now=T0 + _DAY - timedelta(seconds=1),
        )
        assert found is not None
        expired = await UserTokenRepository.find_by_hash_and_context(
            db_session, token_hash=_HASH, context="login", max_age=_DAY, now=T0 + _DAY
        )
        assert expired is None

    async def test_wrong_context_not_found(self, db_session: AsyncSession, test_user):
        """A token never matches under another context."""
        await _insert(db_session, test_user, context="login")
        found = await UserTokenRepository.find_by_hash_and_context(
            db_session, token_hash=_HASH, context="session", max_age=_DAY, now=T0
        )
        assert found is None

    async def test_find_session_sets_authenticated_at(
        self, db_session: AsyncSession, test_user
    ):
        """Session lookup copies the token's authenticated_at to the user."""
        authenticated_at = T0 - timedelta(minutes=5)
        await _insert(db_session, test_user, authenticated_at=authenticated_at)
        found = await UserTokenRepository.find_session(
            db_session, token_hash=_HASH, max_age=_DAY, now=T0
        )
        assert found is not None
        user, created_at = found
        assert user.id == test_user.id
        assert user.authenticated_at == authenticated_at
        assert created_at == T0


class TestDelete:
    """Test the delete operations."""

    async def test_delete_all_for_user_returns_tokens(
        self, db_session: AsyncSession, test_user
    ):
        """All tokens of the user are removed and returned."""
        await _insert(db_session, test_user, context="session")
        await _insert(db_session, test_user, token_hash=_OTHER_HASH, context="login")
        deleted = await UserTokenRepository.delete_all_for_user(
            db_session, test_user.id
        )
        assert {t.context for t in deleted} == {"session", "login"}
        assert await UserTokenRepository.list_for_user(db_session, test_user.id) == []

    async def test_delete_missing_is_not_an_error(self, db_session: AsyncSession):
        """Deleting an unknown token reports zero rows."""
        assert (
            await UserTokenRepository.delete(
                db_session, token_hash=_HASH, context="session"
            )
            == 0
        )

    async def test_delete_for_context(self, db_session: AsyncSession, test_user):
        """Only tokens in the given context are deleted."""
        await _insert(db_session, test_user, context="change:test@example.com")
        await _insert(db_session, test_user, token_hash=_OTHER_HASH, context="session")
        count = await UserTokenRepository.delete_all_for_user_and_context(
            db_session, user_id=test_user.id, context="change:test@example.com"
        )
        assert count == 1
        remaining = await UserTokenRepository.list_for_user(db_session, test_user.id)
        assert [t.context for t in remaining] == ["session"]

    async def test_delete_expired_by_prefix(self, db_session: AsyncSession, test_user):
        """Prefix purge matches every change:<email> context."""
        await _insert(db_session, test_user, context="change:a@x.io")
        await _insert(
            db_session,
            test_user,
            token_hash=_OTHER_HASH,
            context="change:b@x.io",
            created_at=T0 + _DAY,
        )
        count = await UserTokenRepository.delete_expired(
            db_session, context="change:", cutoff=T0, match_prefix=True
        )
        assert count == 1
        remaining = await UserTokenRepository.list_for_user(db_session, test_user.id)
        assert [t.context for t in remaining] == ["change:b@x.io"]

    async def test_tokens_removed_with_user(self, db_session: AsyncSession, test_user):
        """Deleting a user cascades to their tokens."""
        await _insert(db_session, test_user)
        await db_session.delete(test_user)
        await db_session.flush()
        result = await db_session.execute(select(UserToken))
        assert result.scalars().all() == []
