"""
auth/notifier.py -- Out-of-band delivery of password reset tokens.

Email delivery is an external collaborator. AuthService only needs a
callable that takes (user, token); LoggingNotifier is the stand-in used until
a mail transport is wired in. It logs the token at DEBUG only, so production
logs at INFO never carry a live credential.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from auth.models import User

logger = logging.getLogger("mizon.auth.notifier")

ResetNotifier = Callable[[User, str], None]


class LoggingNotifier:
    def __call__(self, user: User, token: str) -> None:
        logger.info("Password reset requested for user %s", user.id)
        logger.debug("Password reset token for user %s: %s", user.id, token)
