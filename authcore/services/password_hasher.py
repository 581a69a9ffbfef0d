"""Password hashing and verification.

Argon2id via argon2-cffi. Salt and cost parameters are embedded in the
encoded hash string, so no separate salt column is needed, and hashes
made under older parameters still verify after the settings change.

Security:
- verify() always performs one full Argon2 verification. When there is no
  stored hash (unknown user, or a magic-link-only user) or the stored hash
  is unreadable, it checks the candidate against a dummy hash made with
  the configured parameters, so response time does not reveal whether an
  account exists. Argon2 hashes input of any length, so over-long
  passwords cost the same on every path.
- Hashing is CPU- and memory-bound and deliberately slow; the async
  variants run it in a worker thread so the event loop keeps serving
  other requests.
"""

import asyncio
import logging

from argon2 import PasswordHasher as Argon2Hasher
from argon2 import Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from authcore.core.config import Settings, settings

logger = logging.getLogger(__name__)

_DUMMY_PLAINTEXT = "authcore-dummy-password"  # nosec B105


class PasswordHasher:
    """One-way password hashing bound to Argon2 parameters from settings."""

    def __init__(self, config: Settings = settings) -> None:
        self._argon2 = Argon2Hasher(
            time_cost=config.argon2_time_cost,
            memory_cost=config.argon2_memory_cost,
            parallelism=config.argon2_parallelism,
            type=Type.ID,
        )
        # Made at construction with the configured parameters
        self._dummy_hash = self._argon2.hash(_DUMMY_PLAINTEXT)

    @property
    def dummy_hash(self) -> str:
        """Hash used for timing equalisation, at the configured parameters."""
        return self._dummy_hash

    def hash(self, plaintext: str) -> str:
        """Hash a password with a fresh salt.

        Args:
            plaintext: Password; callers validate its length first.

        Returns:
            Encoded Argon2id hash string (parameters and salt embedded).
        """
        return self._argon2.hash(plaintext)

    def verify(self, plaintext: str, stored_hash: str | None) -> bool:
        """Check a password against a stored hash.

        Args:
            plaintext: Candidate password.
            stored_hash: Stored Argon2 hash, or None when there is none.

        Returns:
            True only if ``stored_hash`` exists and matches.
        """
        if not stored_hash or not plaintext:
            self._verify_dummy(plaintext)
            return False

        try:
            return self._argon2.verify(stored_hash, plaintext)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError):
            logger.warning("Stored password hash could not be verified")
            self._verify_dummy(plaintext)
            return False

    def _verify_dummy(self, plaintext: str) -> None:
        # Security: full comparison against the dummy hash; the result is unused
        try:
            self._argon2.verify(self._dummy_hash, plaintext or _DUMMY_PLAINTEXT)
        except VerifyMismatchError:
            pass

    async def hash_async(self, plaintext: str) -> str:
        """hash() in a worker thread."""
        return await asyncio.to_thread(self.hash, plaintext)

    async def verify_async(self, plaintext: str, stored_hash: str | None) -> bool:
        """verify() in a worker thread."""
        return await asyncio.to_thread(self.verify, plaintext, stored_hash)
