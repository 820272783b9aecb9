"""
auth/passwords.py -- One-way password hashing with bcrypt.

Security design decisions:
  bcrypt directly (no passlib wrapper). Its cost factor makes brute force
       expensive; the default cost of 12 is tuned for roughly 100-250ms per
       hash on commodity hardware and is configurable via BCRYPT_ROUNDS.

  SHA-256 pre-hash. bcrypt only consumes the first 72 bytes of input and
       bcrypt>=4.1 rejects longer inputs outright. Passwords may be up to 128
       characters (512 bytes of UTF-8), so every password is reduced to
       base64(SHA-256(password)) -- 44 ASCII bytes, no NULs -- before bcrypt
       sees it. Two different passwords never share a bcrypt input.

  Timing equalization [C1]. A dummy hash is computed once at construction so
       a login for an unknown username still pays for one full bcrypt check.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import base64
import hashlib
import logging

import bcrypt

from auth.errors import InternalError

logger = logging.getLogger("mizon.auth.passwords")

DEFAULT_ROUNDS = 12


def _prehash(plain: str) -> bytes:
    return base64.b64encode(hashlib.sha256(plain.encode("utf-8")).digest())


class PasswordHasher:
    """Stateless apart from its cost factor and the timing-equalization hash.

    Usage:
        hasher = PasswordHasher(rounds=12)
        stored = hasher.hash("Secure123!")
        hasher.verify("Secure123!", stored)   # True
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds
        self._dummy_hash = self.hash("mizon_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a salted bcrypt hash of plain.

        Raises InternalError if the salt cannot be generated (entropy source
        failure) or bcrypt rejects its input.
        """
        try:
            salt = bcrypt.gensalt(rounds=self.rounds)
            return bcrypt.hashpw(_prehash(plain), salt).decode("ascii")
        except (OSError, ValueError) as exc:
            logger.error("Password hashing failed: %s", exc)
            raise InternalError() from exc

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if plain matches hashed.

        bcrypt.checkpw compares in constant time. A malformed or empty hash
        is a mismatch, never an exception.
        """
        try:
            return bcrypt.checkpw(_prehash(plain), hashed.encode("ascii"))
        except (ValueError, TypeError, UnicodeEncodeError):
            return False

    def dummy_verify(self, plain: str) -> None:
        """Burn one bcrypt check so 'no such user' costs the same as 'wrong password'."""
        self.verify(plain, self._dummy_hash)
