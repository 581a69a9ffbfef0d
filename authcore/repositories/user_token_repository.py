"""Repository for UserToken operations (the token store).

Tokens are stored as SHA-256 hashes and looked up by (hash, context).
Expiry is a query predicate: a row older than the caller's window is
treated as absent even though it still exists. Rows are only removed by
explicit deletes (logout, password change, consumption, purge).
"""

import uuid
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.errors import ConstraintViolation
from authcore.models.user import User
from authcore.models.user_token import UserToken

_HASH_CONTEXT_CONSTRAINT = "uq_user_tokens_hash_context"


class UserTokenRepository:
    """Stateless repository for UserToken table operations.

    All methods are static; there is no instance state.
    """

    @staticmethod
    async def insert(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        token_hash: str,
        context: str,
        created_at: datetime,
        sent_to: str | None = None,
        authenticated_at: datetime | None = None,
    ) -> UserToken:
        """Store a new token.

        Args:
            db: Async database session.
            user_id: Owning user.
            token_hash: SHA-256 hex digest of the plain token.
            context: Token context string.
            created_at: Issue time; expiry windows are measured from it.
            sent_to: Delivery address, for tokens that carry one.
            authenticated_at: Authentication time copied into session tokens.

        Returns:
            Created UserToken.

        Raises:
            ConstraintViolation: If (hash, context) already exists.
        """
        token = UserToken(
            user_id=user_id,
            hash=token_hash,
            context=context,
            sent_to=sent_to,
            authenticated_at=authenticated_at,
            created_at=created_at,
        )
        db.add(token)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConstraintViolation("hash", _HASH_CONTEXT_CONSTRAINT) from exc
        return token

    @staticmethod
    async def find_by_hash_and_context(
        db: AsyncSession,
        *,
        token_hash: str,
        context: str,
        max_age: timedelta,
        now: datetime,
    ) -> UserToken | None:
        """Look up an unexpired token.

        Args:
            db: Async database session.
            token_hash: SHA-256 hex digest of the plain token.
            context: Context the token must have been minted for.
            max_age: Validity window for this context.
            now: Reference time.

        Returns:
            UserToken if found and younger than ``max_age``, None otherwise.
        """
        stmt = select(UserToken).where(
            UserToken.hash == token_hash,
            UserToken.context == context,
            UserToken.created_at > now - max_age,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def find_session(
        db: AsyncSession,
        *,
        token_hash: str,
        max_age: timedelta,
        now: datetime,
    ) -> tuple[User, datetime] | None:
        """Resolve a session token to its user.

        The returned user's transient ``authenticated_at`` is taken from
        the token, so the stored user row is never touched by a login.

        Args:
            db: Async database session.
            token_hash: SHA-256 hex digest of the plain token.
            max_age: Session validity window.
            now: Reference time.

        Returns:
            (user, token created_at) if the session is valid, None otherwise.
        """
        stmt = (
            select(User, UserToken.authenticated_at, UserToken.created_at)
            .join(UserToken, UserToken.user_id == User.id)
            .where(
                UserToken.hash == token_hash,
                UserToken.context == "session",
                UserToken.created_at > now - max_age,
            )
        )
        result = await db.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        user, authenticated_at, created_at = row
        user.authenticated_at = authenticated_at
        return user, created_at

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: uuid.UUID) -> list[UserToken]:
        """All tokens of a user, oldest first."""
        stmt = (
            select(UserToken)
            .where(UserToken.user_id == user_id)
            .order_by(UserToken.created_at)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def delete_all_for_user(
        db: AsyncSession, user_id: uuid.UUID
    ) -> list[UserToken]:
        """Delete every token of a user.

        Args:
            db: Async database session.
            user_id: Owning user.

        Returns:
            The deleted tokens, for audit or notification.
        """
        tokens = await UserTokenRepository.list_for_user(db, user_id)
        if tokens:
            stmt = delete(UserToken).where(
                UserToken.id.in_([token.id for token in tokens])
            )
            await db.execute(stmt.execution_options(synchronize_session=False))
        return tokens

    @staticmethod
    async def delete_all_for_user_and_context(
        db: AsyncSession, *, user_id: uuid.UUID, context: str
    ) -> int:
        """Delete a user's tokens in one context.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(UserToken).where(
            UserToken.user_id == user_id,
            UserToken.context == context,
        )
        result = await db.execute(stmt.execution_options(synchronize_session=False))
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def delete(db: AsyncSession, *, token_hash: str, context: str) -> int:
        """Delete a token by (hash, context). Missing tokens are not an error.

        Returns:
            Number of deleted rows (0 or 1).
        """
        stmt = delete(UserToken).where(
            UserToken.hash == token_hash,
            UserToken.context == context,
        )
        result = await db.execute(stmt.execution_options(synchronize_session=False))
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def delete_expired(
        db: AsyncSession,
        *,
        context: str,
        cutoff: datetime,
        match_prefix: bool = False,
    ) -> int:
        """Delete tokens created at or before ``cutoff`` (periodic cleanup).

        Args:
            db: Async database session.
            context: Context to purge, or context prefix with ``match_prefix``.
            cutoff: Rows created at or before this time are removed.
            match_prefix: Treat ``context`` as a prefix (``"change:"``).

        Returns:
            Number of deleted rows.
        """
        if match_prefix:
            context_clause = UserToken.context.startswith(context, autoescape=True)
        else:
            context_clause = UserToken.context == context
        stmt = delete(UserToken).where(context_clause, UserToken.created_at <= cutoff)
        result = await db.execute(stmt.execution_options(synchronize_session=False))
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
