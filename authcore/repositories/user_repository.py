"""Repository for User CRUD operations.

Provides database access for the users table. Emails are normalised to
lowercase on write and lookup, which makes the table's unique constraint
case-insensitive.
"""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.errors import ConstraintViolation
from authcore.models.user import User

_EMAIL_CONSTRAINT = "users_email_key"

# Fields that may be updated via UserRepository.update().
# Security: Never add 'id', 'created_at', or 'updated_at'.
# - id: primary key, immutable
# - created_at/updated_at: server-managed timestamps
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "email",
        "hashed_password",
        "confirmed_at",
    }
)


def normalize_email(email: str) -> str:
    """Canonical stored form of an email address."""
    return email.strip().lower()


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static; there is no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(
        db: AsyncSession, user_id: uuid.UUID, *, for_update: bool = False
    ) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.
            for_update: Lock the row until the transaction ends.

        Returns:
            User if found, None otherwise.
        """
        if not for_update:
            return await db.get(User, user_id)
        stmt = select(User).where(User.id == user_id).with_for_update()
        result = await db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == normalize_email(email))
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def email_taken(
        db: AsyncSession, email: str, *, exclude_user_id: uuid.UUID | None = None
    ) -> bool:
        """Check whether another user already holds ``email``.

        This is the pre-flight check; the unique constraint remains the
        authority under concurrent writes.
        """
        stmt = select(User.id).where(User.email == normalize_email(email))
        if exclude_user_id is not None:
            stmt = stmt.where(User.id != exclude_user_id)
        result = await db.execute(stmt.limit(1))
        return result.first() is not None

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        hashed_password: str | None = None,
        confirmed_at: datetime | None = None,
    ) -> User:
        """Create a new user.

        Email is normalized to lowercase before storage.

        Args:
            db: Async database session.
            email: User email address.
            hashed_password: Argon2 hash (None for magic-link-only users).
            confirmed_at: Timestamp when email was confirmed.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            ConstraintViolation: If the email already exists.
        """
        user = User(
            email=normalize_email(email),
            hashed_password=hashed_password,
            confirmed_at=confirmed_at,
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConstraintViolation("email", _EMAIL_CONSTRAINT) from exc
        await db.refresh(user)
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user: User,
        **kwargs: str | datetime | None,
    ) -> User:
        """Update fields of a loaded user.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            user: User attached to ``db``.
            **kwargs: Field names and values to update.

        Returns:
            The updated User, refreshed from the database.

        Raises:
            ValueError: If an unknown field name is passed.
            ConstraintViolation: If a new email collides with another user.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        if isinstance(kwargs.get("email"), str):
            kwargs["email"] = normalize_email(kwargs["email"])

        for field, value in kwargs.items():
            setattr(user, field, value)

        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConstraintViolation("email", _EMAIL_CONSTRAINT) from exc
        await db.refresh(user)
        return user
