"""Issuance and verification of session, magic link and email-change tokens.

Callers hand out and receive the encoded (URL-safe) form; only hashes are
stored. Every method takes the caller's AsyncSession and performs no
commit: AccountService wraps each operation in one unit of work, so a
failed check anywhere rolls back everything the operation wrote.

Failure signalling:
- Lookups return None for a token that cannot be decoded, does not
  exist, belongs to another context, or has expired. The cases are
  indistinguishable to the caller.
- Consumers raise TransactionAborted for the same cases, plus a lost
  race or an email collision; the surrounding transaction then rolls back.
"""

import uuid
from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.clock import Clock, utc_now
from authcore.core.config import Settings, settings
from authcore.core.errors import (
    ConstraintViolation,
    InvalidEncoding,
    TransactionAborted,
)
from authcore.models.user import User
from authcore.models.user_token import UserToken
from authcore.repositories.user_repository import UserRepository
from authcore.repositories.user_token_repository import UserTokenRepository
from authcore.services.token_codec import TokenCodec
from authcore.services.token_context import (
    TokenContext,
    TokenPolicy,
    context_value,
    token_policies,
)

logger = structlog.get_logger()


class TokenLifecycle:
    """Mints and checks user tokens according to per-context policies.

    Args:
        config: Settings providing expiry windows and token size.
        codec: Token codec; built from ``config`` when omitted.
        clock: Source of "now".
    """

    def __init__(
        self,
        config: Settings = settings,
        *,
        codec: TokenCodec | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._config = config
        self._codec = codec or TokenCodec(config)
        self._clock = clock
        self._policies = token_policies(config)

    def policy(self, kind: TokenContext) -> TokenPolicy:
        """Expiry policy for a token kind."""
        return self._policies[kind]

    def _hash_of(self, encoded: str) -> str | None:
        try:
            raw = self._codec.decode_from_transport(encoded)
        except InvalidEncoding:
            return None
        return self._codec.hash_token(raw)

    async def _issue(
        self,
        db: AsyncSession,
        user: User,
        context: str,
        *,
        sent_to: str | None = None,
        authenticated_at: datetime | None = None,
    ) -> str:
        raw, token_hash = self._codec.mint()
        await UserTokenRepository.insert(
            db,
            user_id=user.id,
            token_hash=token_hash,
            context=context,
            sent_to=sent_to,
            authenticated_at=authenticated_at,
            created_at=self._clock(),
        )
        return self._codec.encode_for_transport(raw)

    # ---------------------------------------------------------------
    # Sessions
    # ---------------------------------------------------------------

    async def issue_session_token(self, db: AsyncSession, user: User) -> str:
        """Mint and store a session token for ``user``.

        The user's ``authenticated_at`` is copied into the token (now, if
        unset) so later loads through this session can judge recency.

        Returns:
            Encoded session token.
        """
        authenticated_at = user.authenticated_at or self._clock()
        encoded = await self._issue(
            db,
            user,
            context_value(TokenContext.SESSION),
            authenticated_at=authenticated_at,
        )
        logger.info("session_token_issued", user_id=str(user.id))
        return encoded

    async def verify_session_token(
        self, db: AsyncSession, encoded: str
    ) -> tuple[User, datetime] | None:
        """Resolve an encoded session token.

        Returns:
            (user with authenticated_at set, token issue time), or None.
        """
        token_hash = self._hash_of(encoded)
        if token_hash is None:
            return None
        return await UserTokenRepository.find_session(
            db,
            token_hash=token_hash,
            max_age=self.policy(TokenContext.SESSION).max_age,
            now=self._clock(),
        )

    async def delete_session_token(self, db: AsyncSession, encoded: str) -> None:
        """Delete a session token. Idempotent; unknown tokens are ignored."""
        token_hash = self._hash_of(encoded)
        if token_hash is None:
            return
        deleted = await UserTokenRepository.delete(
            db,
            token_hash=token_hash,
            context=context_value(TokenContext.SESSION),
        )
        if deleted:
            logger.info("session_token_deleted")

    def recently_authenticated(
        self, user: User, window_minutes: int | None = None
    ) -> bool:
        """Whether ``user`` authenticated within the sudo window.

        Args:
            user: User as loaded through a session (carries authenticated_at).
            window_minutes: Window length; defaults to settings.

        Returns:
            True iff authenticated_at is set and newer than now - window.
        """
        authenticated_at = user.authenticated_at
        if authenticated_at is None:
            return False
        minutes = (
            self._config.sudo_window_minutes
            if window_minutes is None
            else window_minutes
        )
        return authenticated_at > self._clock() - timedelta(minutes=minutes)

    # ---------------------------------------------------------------
    # Email change
    # ---------------------------------------------------------------

    async def issue_email_change_token(
        self, db: AsyncSession, user: User, new_email: str
    ) -> str:
        """Mint a confirmation token for moving ``user`` to ``new_email``.

        The token is scoped to the user's current address, so it goes stale
        if that address changes before confirmation.

        Returns:
            Encoded email-change token.
        """
        return await self._issue(
            db,
            user,
            context_value(TokenContext.CHANGE_EMAIL, user.email),
            sent_to=new_email,
        )

    async def verify_and_consume_email_change(
        self, db: AsyncSession, user: User, encoded: str
    ) -> User:
        """Apply an email change if ``encoded`` is a live token for it.

        Steps, all inside the caller's transaction:
        1. re-load the user (row-locked) to get the address as of now
        2. find the token under ``change:<that address>``
        3. delete every token in that context; zero rows means a concurrent
           confirmation already won
        4. set the email to the token's ``sent_to``

        Returns:
            Updated user.

        Raises:
            TransactionAborted: On any failed step. The caller must let it
                propagate out of the transaction so nothing is committed.
        """
        token_hash = self._hash_of(encoded)
        if token_hash is None:
            raise TransactionAborted()

        current = await UserRepository.get_by_id(db, user.id, for_update=True)
        if current is None:
            raise TransactionAborted()

        context = context_value(TokenContext.CHANGE_EMAIL, current.email)
        token = await UserTokenRepository.find_by_hash_and_context(
            db,
            token_hash=token_hash,
            context=context,
            max_age=self.policy(TokenContext.CHANGE_EMAIL).max_age,
            now=self._clock(),
        )
        if token is None or token.user_id != current.id or not token.sent_to:
            raise TransactionAborted()
        new_email = token.sent_to

        claimed = await UserTokenRepository.delete_all_for_user_and_context(
            db, user_id=current.id, context=context
        )
        if claimed == 0:
            raise TransactionAborted()

        try:
            updated = await UserRepository.update(db, current, email=new_email)
        except ConstraintViolation as exc:
            raise TransactionAborted() from exc

        updated.authenticated_at = user.authenticated_at
        return updated

    # ---------------------------------------------------------------
    # Magic links
    # ---------------------------------------------------------------

    async def issue_login_token(self, db: AsyncSession, user: User) -> str:
        """Mint a short-lived magic link token.

        Returns:
            Encoded login token.
        """
        return await self._issue(db, user, context_value(TokenContext.LOGIN))

    async def find_login_token(
        self, db: AsyncSession, encoded: str
    ) -> tuple[User, UserToken] | None:
        """Look up a live login token without consuming it.

        Returns:
            (user, token) or None.
        """
        token_hash = self._hash_of(encoded)
        if token_hash is None:
            return None
        token = await UserTokenRepository.find_by_hash_and_context(
            db,
            token_hash=token_hash,
            context=context_value(TokenContext.LOGIN),
            max_age=self.policy(TokenContext.LOGIN).max_age,
            now=self._clock(),
        )
        if token is None:
            return None
        user = await UserRepository.get_by_id(db, token.user_id, for_update=True)
        if user is None:
            return None
        return user, token

    async def consume_login_token(
        self, db: AsyncSession, encoded: str
    ) -> tuple[User, UserToken]:
        """Look up and delete a login token in the caller's transaction.

        Returns:
            (user, consumed token).

        Raises:
            TransactionAborted: If the token is not live, or another
                request consumed it first.
        """
        found = await self.find_login_token(db, encoded)
        if found is None:
            raise TransactionAborted()
        user, token = found

        deleted = await UserTokenRepository.delete(
            db,
            token_hash=token.hash,
            context=context_value(TokenContext.LOGIN),
        )
        if deleted == 0:
            raise TransactionAborted()
        logger.info("login_token_consumed", user_id=str(user.id))
        return user, token

    # ---------------------------------------------------------------
    # Bulk invalidation
    # ---------------------------------------------------------------

    async def expire_all_for_user(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> list[UserToken]:
        """Delete every token of a user; returns what was deleted."""
        return await UserTokenRepository.delete_all_for_user(db, user_id)

    async def purge_expired(self, db: AsyncSession) -> dict[str, int]:
        """Delete rows past their context's window.

        Reads already ignore such rows; this only reclaims space.

        Returns:
            Deleted row count per token kind.
        """
        now = self._clock()
        counts: dict[str, int] = {}
        for kind, policy in self._policies.items():
            if kind is TokenContext.CHANGE_EMAIL:
                counts[kind.value] = await UserTokenRepository.delete_expired(
                    db,
                    context=f"{kind.value}:",
                    cutoff=policy.cutoff(now),
                    match_prefix=True,
                )
            else:
                counts[kind.value] = await UserTokenRepository.delete_expired(
                    db,
                    context=kind.value,
                    cutoff=policy.cutoff(now),
                )
        logger.info("expired_tokens_purged", **counts)
        return counts
