"""Opaque token generation, hashing and transport encoding.

Tokens are random bytes from ``secrets``. The database only ever sees
their SHA-256 digest. A fast hash is enough here: the input is
high-entropy, not a human-chosen secret, and a leaked table still yields
nothing usable.

Transport form is URL-safe base64 without padding, so tokens drop into
links without escaping.
"""

import base64
import binascii
import hashlib
import re
import secrets

from authcore.core.config import Settings, settings
from authcore.core.errors import InvalidEncoding

_URLSAFE_ALTCHARS = b"-_"
_TRANSPORT_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


class TokenCodec:
    """Mint, hash, encode and decode opaque tokens."""

    def __init__(self, config: Settings = settings) -> None:
        self._token_bytes = config.token_bytes

    def mint(self) -> tuple[bytes, str]:
        """Generate a token and its storage hash.

        Returns:
            (raw_token, token_hash): raw for the user, hash for the DB.
        """
        raw = secrets.token_bytes(self._token_bytes)
        return raw, self.hash_token(raw)

    @staticmethod
    def hash_token(raw: bytes) -> str:
        """SHA-256 hex digest stored in place of the token."""
        return hashlib.sha256(raw).hexdigest()

    @staticmethod
    def encode_for_transport(raw: bytes) -> str:
        """URL-safe, padding-free text form of a token."""
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    @staticmethod
    def decode_from_transport(encoded: str) -> bytes:
        """Recover the raw token from its text form.

        Args:
            encoded: Value produced by encode_for_transport().

        Returns:
            Raw token bytes.

        Raises:
            InvalidEncoding: If ``encoded`` is empty, not ASCII, uses
                characters outside the URL-safe alphabet, or has an
                impossible length.
        """
        if not isinstance(encoded, str):
            raise InvalidEncoding()
        if not _TRANSPORT_PATTERN.fullmatch(encoded):
            raise InvalidEncoding()
        try:
            data = encoded.encode("ascii")
            padded = data + b"=" * (-len(data) % 4)
            raw = base64.b64decode(padded, altchars=_URLSAFE_ALTCHARS, validate=True)
        except (UnicodeEncodeError, binascii.Error) as exc:
            raise InvalidEncoding() from exc
        if not raw:
            raise InvalidEncoding()
        return raw
