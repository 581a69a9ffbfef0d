"""User token model - session, magic link and email-change tokens.

Only the SHA-256 hash of a token is stored; the plaintext exists only in
the caller's hands. One table serves every purpose, partitioned by the
``context`` column.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authcore.models.base import Base, UTCDateTime

if TYPE_CHECKING:
    from authcore.models.user import User

# Hex-encoded SHA-256 digest length
TOKEN_HASH_LENGTH = 64


class UserToken(Base):
    """Hashed token bound to a user and a context.

    Attributes:
        id: UUID primary key.
        hash: Hex SHA-256 of the plaintext token.
        context: ``"session"``, ``"login"`` or ``"change:<email>"``.
        sent_to: Address the token was delivered to (email-change tokens).
        user_id: Owning user. Tokens are deleted with their user.
        authenticated_at: For session tokens, when the user authenticated.
        created_at: Issue time; expiry is measured from here.
    """

    __tablename__ = "user_tokens"
    __table_args__ = (
        UniqueConstraint("hash", "context", name="uq_user_tokens_hash_context"),
        Index("idx_user_tokens_user_id", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    hash: Mapped[str] = mapped_column(
        String(TOKEN_HASH_LENGTH),
        nullable=False,
    )
    context: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    sent_to: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    authenticated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="tokens")

    def __repr__(self) -> str:
        return f"<UserToken id={self.id} context={self.context!r}>"
