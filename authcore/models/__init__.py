"""SQLAlchemy ORM models for authcore.

All models are exported from this module for convenient imports:
    from authcore.models import User, UserToken

- user.py: User
- user_token.py: UserToken (session / login / email-change tokens)
"""

from authcore.models.base import Base, TimestampMixin, UTCDateTime
from authcore.models.user import User
from authcore.models.user_token import UserToken

__all__ = [
    "Base",
    "TimestampMixin",
    "UTCDateTime",
    "User",
    "UserToken",
]
