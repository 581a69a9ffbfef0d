"""Token contexts and their expiry policies.

Every token row carries a context string that scopes it to one purpose.
A token minted for one context never validates in another.

- ``session``: browser session
- ``login``: passwordless (magic link) sign-in
- ``change:<current email>``: email-change confirmation; binding the
  current address into the context makes the token stale as soon as
  the address changes
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from authcore.core.config import Settings

_CHANGE_SEPARATOR = ":"


class TokenContext(str, Enum):
    """Kinds of user token."""

    SESSION = "session"
    LOGIN = "login"
    CHANGE_EMAIL = "change"


@dataclass(frozen=True)
class TokenPolicy:
    """Expiry and delivery rules for one token kind.

    Attributes:
        max_age: Tokens older than this no longer verify.
        carries_sent_to: Whether rows record the delivery address.
    """

    max_age: timedelta
    carries_sent_to: bool

    def cutoff(self, now: datetime) -> datetime:
        """Oldest ``created_at`` still considered valid at ``now``."""
        return now - self.max_age


def context_value(kind: TokenContext, email: str | None = None) -> str:
    """Build the stored context string for a token kind.

    Args:
        kind: Token kind.
        email: Current address of the user; required for CHANGE_EMAIL.

    Returns:
        Context string as stored in ``user_tokens.context``.

    Raises:
        ValueError: If CHANGE_EMAIL is requested without an email.
    """
    if kind is TokenContext.CHANGE_EMAIL:
        if not email:
            msg = "Email-change context requires the current email"
            raise ValueError(msg)
        return f"{kind.value}{_CHANGE_SEPARATOR}{email}"
    return kind.value


def token_policies(config: Settings) -> dict[TokenContext, TokenPolicy]:
    """Policy table for every token kind, built from settings."""
    return {
        TokenContext.SESSION: TokenPolicy(
            max_age=config.session_token_max_age,
            carries_sent_to=False,
        ),
        TokenContext.LOGIN: TokenPolicy(
            max_age=config.login_token_max_age,
            carries_sent_to=False,
        ),
        TokenContext.CHANGE_EMAIL: TokenPolicy(
            max_age=config.change_email_token_max_age,
            carries_sent_to=True,
        ),
    }
