"""
auth/tokens.py -- Opaque token generation and at-rest hashing.

Security design decisions:
  Generation: secrets.token_urlsafe(32) gives 256 bits of entropy in a
       URL-safe alphabet, so the same generator serves bearer sessions and
       reset links. Brute force is computationally infeasible.

  At rest: tokens are stored as HMAC-SHA256(SECRET_KEY, token). The hash is
       deterministic, so lookup stays a primary-key hit, and an attacker who
       obtains the database cannot replay tokens without also knowing
       SECRET_KEY. bcrypt's intentional slowness is unnecessary for
       high-entropy random tokens.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

from auth.errors import InternalError

TOKEN_BYTES = 32


def generate_token() -> str:
    """Return a new URL-safe random token. Entropy failure raises InternalError."""
    try:
        return secrets.token_urlsafe(TOKEN_BYTES)
    except OSError as exc:
        raise InternalError() from exc


class TokenHasher:
    """Keyed digest for tokens at rest.

    Usage:
        hasher = TokenHasher(settings.secret_key)
        store.find_session(hasher.digest(raw_token))
    """

    def __init__(self, secret_key: str) -> None:
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._key = secret_key.encode("utf-8")

    def digest(self, token: str) -> str:
        return hmac.new(self._key, token.encode("utf-8"), hashlib.sha256).hexdigest()
