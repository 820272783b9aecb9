"""
auth/resets.py -- One-time password reset tokens.

A reset token is single use. consume() claims the row through
UserStore.find_and_delete_reset_token(), so the lookup and the delete are
one logical operation: a second consume of the same token -- sequential or
concurrent -- finds nothing and raises InvalidToken.

An expired token is deleted by the consume attempt that discovers it, then
reported as TokenExpired. Both failures carry the same generic message.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from auth.errors import InternalError, InvalidToken, TokenExpired
from auth.sessions import utc_now
from auth.store import StoreError, UserStore
from auth.tokens import TokenHasher, generate_token

logger = logging.getLogger("mizon.auth.resets")

DEFAULT_TTL = timedelta(hours=1)


class ResetTokenManager:
    def __init__(
        self,
        store: UserStore,
        hasher: TokenHasher,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self.ttl = ttl
        self._clock = clock

    def issue(self, user_id: str, token: str | None = None) -> str:
        """Persist a reset token for user_id, valid for ttl, and return it.

        token may be supplied by a caller that generated one ahead of time
        (see AuthService.forgot_password); otherwise a fresh one is made.
        """
        token = token or generate_token()
        expires_at = self._clock() + self.ttl
        try:
            self._store.insert_reset_token(self._hasher.digest(token), user_id, expires_at)
        except StoreError as exc:
            logger.error("Error storing reset token for user %s: %s", user_id, exc)
            raise InternalError() from exc
        return token

    def consume(self, token: str) -> str:
        """Claim token and return its user id. Works at most once per token."""
        if not token:
            raise InvalidToken()
        try:
            record = self._store.find_and_delete_reset_token(self._hasher.digest(token))
        except StoreError as exc:
            logger.error("Error consuming reset token: %s", exc)
            raise InternalError() from exc
        if record is None:
            raise InvalidToken()
        if self._clock() >= record.expires_at:
            raise TokenExpired()
        return record.user_id
