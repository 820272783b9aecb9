"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, managers, and service do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """A registered account.

    username and email are each unique and compared case-sensitively, exactly
    as stored. Both arrive here already sanitized (see auth/validation.py).

    password_hash is a bcrypt hash of the SHA-256 pre-hashed password; the
    plaintext never reaches this object.
    """

    username: str
    email: str
    password_hash: str
    id: str | None = None  # uuid4, assigned by the store on insert
    first_name: str = ""
    last_name: str = ""
    created_at: str | None = None  # ISO 8601 UTC


@dataclass
class Session:
    """A bearer session as persisted.

    token_hash is HMAC-SHA256(SECRET_KEY, token); the raw token only ever
    lives in the client's Authorization header.
    """

    token_hash: str
    user_id: str
    expires_at: datetime  # timezone-aware UTC
    created_at: str | None = None


@dataclass
class ResetToken:
    """A one-time password reset token as persisted. Same hashing as Session."""

    token_hash: str
    user_id: str
    expires_at: datetime  # timezone-aware UTC
    created_at: str | None = None
