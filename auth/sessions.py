"""
auth/sessions.py -- Bearer session issuance, resolution and revocation.

A session token is valid if and only if its row exists and the current time
is strictly before its expiry. Expiry is checked at read time; expired rows
are left for the background purge rather than deleted on lookup.

The manager never sees SQL and never stores raw tokens: every token passes
through TokenHasher before it reaches UserStore.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.errors import InternalError, InvalidToken, TokenExpired
from auth.store import StoreError, UserStore
from auth.tokens import TokenHasher, generate_token

logger = logging.getLogger("mizon.auth.sessions")

DEFAULT_TTL = timedelta(hours=24)
DEFAULT_REMEMBER_ME_TTL = timedelta(days=30)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Issues and checks opaque bearer tokens backed by the sessions table.

    Usage:
        sessions = SessionManager(store, TokenHasher(secret))
        token, expires_at = sessions.create(user.id, remember_me=False)
        user_id = sessions.resolve(token)   # raises InvalidToken / TokenExpired
        sessions.revoke(token)
    """

    def __init__(
        self,
        store: UserStore,
        hasher: TokenHasher,
        ttl: timedelta = DEFAULT_TTL,
        remember_me_ttl: timedelta = DEFAULT_REMEMBER_ME_TTL,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self.ttl = ttl
        self.remember_me_ttl = remember_me_ttl
        self._clock = clock

    def create(self, user_id: str, remember_me: bool = False) -> tuple[str, datetime]:
        """Persist a new session for user_id and return (token, expires_at)."""
        token = generate_token()
        expires_at = self._clock() + (self.remember_me_ttl if remember_me else self.ttl)
        try:
            self._store.insert_session(self._hasher.digest(token), user_id, expires_at)
        except StoreError as exc:
            logger.error("Error creating session for user %s: %s", user_id, exc)
            raise InternalError() from exc
        return token, expires_at

    def resolve(self, token: str) -> str:
        """Return the owning user id of a live token.

        Raises InvalidToken for an empty or unknown token and TokenExpired once
        now >= expires_at. Store failures raise InternalError.
        """
        if not token:
            raise InvalidToken("no token provided")
        try:
            session = self._store.find_session(self._hasher.digest(token))
        except StoreError as exc:
            logger.error("Error resolving session: %s", exc)
            raise InternalError() from exc
        if session is None:
            raise InvalidToken("invalid token")
        if self._clock() >= session.expires_at:
            raise TokenExpired("token expired")
        return session.user_id

    def revoke(self, token: str) -> None:
        """Delete the session for token. Revoking an unknown token is not an error."""
        if not token:
            return
        try:
            self._store.delete_session(self._hasher.digest(token))
        except StoreError as exc:
            logger.error("Error deleting session: %s", exc)
            raise InternalError() from exc

    def revoke_all(self, user_id: str) -> int:
        """Delete every session owned by user_id. Returns the number removed."""
        try:
            removed = self._store.delete_sessions_by_user(user_id)
        except StoreError as exc:
            logger.error("Error invalidating sessions for user %s: %s", user_id, exc)
            raise InternalError() from exc
        logger.info("Revoked %d session(s) for user %s", removed, user_id)
        return removed
