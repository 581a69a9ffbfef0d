"""Account registration, authentication and credential changes.

Each public method is one unit of work: it opens a session, runs its
reads and writes in a single transaction, and commits or rolls back as a
whole. Password hashing runs outside those transactions (in a worker
thread) so a slow hash never holds database locks.

Security considerations:
- authenticate: one Argon2 comparison on every path (dummy hash when the
  user is unknown), generic None result
- register: every field error reported together; the email unique
  constraint backs the pre-flight check against concurrent sign-ups
- update_password: new hash and deletion of every token commit together,
  so no reader sees the new password alongside old sessions
- update_email / login_user_by_magic_link: token checks and writes share
  one transaction; any failure raises TransactionAborted
"""

import uuid
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authcore.core.clock import Clock, utc_now
from authcore.core.config import Settings, settings
from authcore.core.database import run_in_transaction
from authcore.core.errors import (
    ConstraintViolation,
    TransactionAborted,
    ValidationFailure,
)
from authcore.models.user import User
from authcore.models.user_token import UserToken
from authcore.repositories.user_repository import UserRepository, normalize_email
from authcore.schemas.accounts import (
    cast_email_change_params,
    cast_registration_params,
)
from authcore.services.password_hasher import PasswordHasher
from authcore.services.token_lifecycle import TokenLifecycle
from authcore.services.user_notifier import DeliveryReceipt, UserNotifier
from authcore.services.validation import (
    EMAIL_TAKEN_MSG,
    EMAIL_UNCHANGED_MSG,
    FieldErrors,
    merge_errors,
    raise_for_errors,
    validate_email,
    validate_password,
)

logger = structlog.get_logger()

UrlBuilder = Callable[[str], str]


class AccountService:
    """Account operations over a transactional store.

    Args:
        session_factory: Produces sessions bound to the store.
        config: Settings threaded into every collaborator.
        hasher: Password hasher; built from ``config`` when omitted.
        lifecycle: Token lifecycle; built from ``config`` and ``clock``
            when omitted.
        notifier: Email sink; built from ``config`` when omitted.
        clock: Source of "now".
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: Settings = settings,
        *,
        hasher: PasswordHasher | None = None,
        lifecycle: TokenLifecycle | None = None,
        notifier: UserNotifier | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._config = config
        self._hasher = hasher or PasswordHasher(config)
        self._lifecycle = lifecycle or TokenLifecycle(config, clock=clock)
        self._notifier = notifier or UserNotifier(config)
        self._clock = clock

    # ===============================================================
    # Lookups
    # ===============================================================

    async def get_user(self, user_id: uuid.UUID) -> User:
        """Fetch a user by id.

        Raises:
            LookupError: If no such user exists.
        """

        async def work(db: AsyncSession) -> User | None:
            return await UserRepository.get_by_id(db, user_id)

        user = await run_in_transaction(self._session_factory, work)
        if user is None:
            msg = f"User with id '{user_id}' not found"
            raise LookupError(msg)
        return user

    async def get_user_by_email(self, email: str) -> User | None:
        """Fetch a user by email (case-insensitive)."""

        async def work(db: AsyncSession) -> User | None:
            return await UserRepository.get_by_email(db, email)

        return await run_in_transaction(self._session_factory, work)

    # ===============================================================
    # Registration
    # ===============================================================

    async def register(
        self,
        email: str | None,
        password: str | None,
        password_confirmation: str | None,
    ) -> User:
        """Create an account with a password.

        Returns:
            The new user. The plaintext password is not retained.

        Raises:
            ValidationFailure: With every failing field (blank, format,
                length, uniqueness, confirmation). Nothing is persisted.
        """
        errors = merge_errors(
            validate_email(email, self._config),
            validate_password(password, password_confirmation, self._config),
        )
        if email is not None and "email" not in errors:
            if await self._email_taken(email):
                errors = merge_errors(errors, {"email": [EMAIL_TAKEN_MSG]})
        raise_for_errors(errors)
        assert email is not None, "validated email must be present"
        assert password is not None, "validated password must be present"

        hashed_password = await self._hasher.hash_async(password)

        async def work(db: AsyncSession) -> User:
            return await UserRepository.create(
                db, email=email, hashed_password=hashed_password
            )

        try:
            user = await run_in_transaction(self._session_factory, work)
        except ConstraintViolation as exc:
            # Lost a race with a concurrent registration of the same email
            raise ValidationFailure({exc.field: [EMAIL_TAKEN_MSG]}) from exc

        logger.info("user_registered", user_id=str(user.id))
        return user

    async def register_with_params(self, params: Mapping[Any, Any]) -> User:
        """register() from loosely-typed params; unknown keys are dropped."""
        cast = cast_registration_params(params)
        return await self.register(
            cast.email, cast.password, cast.password_confirmation
        )

    async def _email_taken(
        self, email: str, *, exclude_user_id: uuid.UUID | None = None
    ) -> bool:
        async def work(db: AsyncSession) -> bool:
            return await UserRepository.email_taken(
                db, email, exclude_user_id=exclude_user_id
            )

        return await run_in_transaction(self._session_factory, work)

    # ===============================================================
    # Authentication and sessions
    # ===============================================================

    async def authenticate(self, email: str, password: str) -> User | None:
        """Return the user for a valid email/password pair, else None.

        The unknown-email and wrong-password paths both run one Argon2
        comparison, so they cannot be told apart by timing.
        """
        user = await self.get_user_by_email(email)
        stored_hash = user.hashed_password if user is not None else None
        if await self._hasher.verify_async(password, stored_hash):
            return user
        return None

    async def issue_session_token(self, user: User) -> str:
        """Create a session for ``user`` and return its encoded token."""

        async def work(db: AsyncSession) -> str:
            return await self._lifecycle.issue_session_token(db, user)

        return await run_in_transaction(self._session_factory, work)

    async def verify_session_token(self, token: str) -> tuple[User, datetime] | None:
        """Resolve a session token to (user, issued_at), or None."""

        async def work(db: AsyncSession) -> tuple[User, datetime] | None:
            return await self._lifecycle.verify_session_token(db, token)

        return await run_in_transaction(self._session_factory, work)

    async def delete_session_token(self, token: str) -> None:
        """Log out a session. Succeeds even if the token is unknown."""

        async def work(db: AsyncSession) -> None:
            await self._lifecycle.delete_session_token(db, token)

        await run_in_transaction(self._session_factory, work)

    def recently_authenticated(
        self, user: User, window_minutes: int | None = None
    ) -> bool:
        """Whether ``user`` is within the sudo window."""
        return self._lifecycle.recently_authenticated(user, window_minutes)

    # ===============================================================
    # Password change
    # ===============================================================

    def validate_password_change(
        self, password: str | None, password_confirmation: str | None
    ) -> FieldErrors:
        """Field errors for a proposed password, without persisting anything."""
        return validate_password(password, password_confirmation, self._config)

    async def update_password(
        self,
        user: User,
        password: str | None,
        password_confirmation: str | None,
    ) -> tuple[User, list[UserToken]]:
        """Set a new password and sign the user out everywhere.

        Returns:
            (updated user, tokens that were deleted).

        Raises:
            ValidationFailure: If the password fails the rules.
            LookupError: If the user no longer exists.
        """
        raise_for_errors(
            self.validate_password_change(password, password_confirmation)
        )
        assert password is not None, "validated password must be present"
        hashed_password = await self._hasher.hash_async(password)

        async def work(db: AsyncSession) -> tuple[User, list[UserToken]]:
            current = await UserRepository.get_by_id(db, user.id, for_update=True)
            if current is None:
                msg = f"User with id '{user.id}' not found"
                raise LookupError(msg)
            updated = await UserRepository.update(
                db, current, hashed_password=hashed_password
            )
            expired = await self._lifecycle.expire_all_for_user(db, updated.id)
            return updated, expired

        updated, expired = await run_in_transaction(self._session_factory, work)
        updated.authenticated_at = user.authenticated_at
        logger.info(
            "password_updated", user_id=str(updated.id), expired_tokens=len(expired)
        )
        return updated, expired

    # ===============================================================
    # Email change
    # ===============================================================

    async def deliver_update_email_instructions(
        self, user: User, new_email: str | None, url_fun: UrlBuilder
    ) -> DeliveryReceipt:
        """Send a confirmation link for changing ``user``'s email.

        Args:
            user: Account whose email changes.
            new_email: Requested address.
            url_fun: Builds the confirmation URL from the encoded token.

        Returns:
            Delivery receipt for the email sent to ``new_email``.

        Raises:
            ValidationFailure: If the address is invalid, unchanged, or taken.
        """
        errors = validate_email(new_email, self._config)
        if new_email is not None and "email" not in errors:
            if normalize_email(new_email) == normalize_email(user.email):
                errors = {"email": [EMAIL_UNCHANGED_MSG]}
            elif await self._email_taken(new_email, exclude_user_id=user.id):
                errors = {"email": [EMAIL_TAKEN_MSG]}
        raise_for_errors(errors)
        assert new_email is not None, "validated email must be present"
        target = normalize_email(new_email)

        async def work(db: AsyncSession) -> str:
            current = await UserRepository.get_by_id(db, user.id)
            if current is None:
                msg = f"User with id '{user.id}' not found"
                raise LookupError(msg)
            return await self._lifecycle.issue_email_change_token(db, current, target)

        token = await run_in_transaction(self._session_factory, work)
        logger.info("email_change_requested", user_id=str(user.id))
        return await self._notifier.deliver_update_email_instructions(
            target, url_fun(token)
        )

    async def deliver_update_email_instructions_with_params(
        self, user: User, params: Mapping[Any, Any], url_fun: UrlBuilder
    ) -> DeliveryReceipt:
        """deliver_update_email_instructions() from loosely-typed params."""
        cast = cast_email_change_params(params)
        return await self.deliver_update_email_instructions(user, cast.email, url_fun)

    async def update_email(self, user: User, token: str) -> User:
        """Confirm an email change.

        Returns:
            The user with the new email.

        Raises:
            TransactionAborted: If the token is invalid, expired, already
                used, or was minted for an address the user no longer has.
        """

        async def work(db: AsyncSession) -> User:
            return await self._lifecycle.verify_and_consume_email_change(
                db, user, token
            )

        try:
            updated = await run_in_transaction(self._session_factory, work)
        except TransactionAborted:
            logger.info("email_change_aborted", user_id=str(user.id))
            raise
        logger.info("email_updated", user_id=str(updated.id))
        return updated

    # ===============================================================
    # Magic links
    # ===============================================================

    async def deliver_login_instructions(
        self, user: User, url_fun: UrlBuilder
    ) -> DeliveryReceipt:
        """Email a magic link; unconfirmed users get confirmation wording.

        Raises:
            LookupError: If the user no longer exists.
        """

        async def work(db: AsyncSession) -> tuple[User, str]:
            current = await UserRepository.get_by_id(db, user.id)
            if current is None:
                msg = f"User with id '{user.id}' not found"
                raise LookupError(msg)
            return current, await self._lifecycle.issue_login_token(db, current)

        current, token = await run_in_transaction(self._session_factory, work)
        url = url_fun(token)
        if current.confirmed_at is None:
            return await self._notifier.deliver_confirmation_instructions(
                current.email, url
            )
        return await self._notifier.deliver_login_instructions(current.email, url)

    async def get_user_by_magic_link_token(self, token: str) -> User | None:
        """User a live magic link belongs to, without consuming it."""

        async def work(db: AsyncSession) -> User | None:
            found = await self._lifecycle.find_login_token(db, token)
            return found[0] if found is not None else None

        return await run_in_transaction(self._session_factory, work)

    async def login_user_by_magic_link(
        self, token: str
    ) -> tuple[User, list[UserToken]]:
        """Consume a magic link and return its user.

        The link is deleted in the same transaction that reads it, so it
        works once. An unconfirmed user is confirmed by the login: any
        password set before confirmation is cleared and all of that user's
        other tokens are deleted.

        Returns:
            (user, tokens deleted besides the link itself).

        Raises:
            TransactionAborted: If the link is invalid, expired or used.
        """

        async def work(db: AsyncSession) -> tuple[User, list[UserToken]]:
            user, _token = await self._lifecycle.consume_login_token(db, token)
            if user.confirmed_at is not None:
                return user, []
            confirmed = await UserRepository.update(
                db, user, confirmed_at=self._clock(), hashed_password=None
            )
            expired = await self._lifecycle.expire_all_for_user(db, confirmed.id)
            return confirmed, expired

        return await run_in_transaction(self._session_factory, work)

    # ===============================================================
    # Maintenance
    # ===============================================================

    async def purge_expired_tokens(self) -> dict[str, int]:
        """Delete tokens past their window; returns counts per kind."""

        async def work(db: AsyncSession) -> dict[str, int]:
            return await self._lifecycle.purge_expired(db)

        return await run_in_transaction(self._session_factory, work)
