"""User model - account identity and credentials."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authcore.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from authcore.models.user_token import UserToken

EMAIL_MAX_LENGTH = 160


class User(Base, TimestampMixin):
    """User account.

    Attributes:
        id: UUID primary key.
        email: Unique email address, stored lowercase so the unique
            constraint is case-insensitive.
        hashed_password: Argon2 hash. NULL for magic-link-only users.
        confirmed_at: When the email address was confirmed. NULL = unconfirmed.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
        authenticated_at: Not persisted. Set on users loaded through a
            session token to the time that session was authenticated.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(EMAIL_MAX_LENGTH),
        unique=True,
        nullable=False,
    )
    hashed_password: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    # Transient; unannotated so the mapper leaves it alone
    authenticated_at = None

    tokens: Mapped[list["UserToken"]] = relationship(
        "UserToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        # hashed_password is never rendered
        return f"<User id={self.id} email={self.email!r}>"
