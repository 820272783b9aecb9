"""
api/limiter.py -- Shared slowapi rate limiter instance (per-IP flood guard).

Import this in api/main.py (to mount as middleware) and in route modules (to
mark polled endpoints with @limiter.exempt).

This is the coarse outer guard: every route gets GLOBAL_RATE_LIMIT per
client address. The action-specific limits (5 logins/minute, 3 signups/hour)
are enforced inside AuthService by auth/ratelimit.py, which needs exact
sliding-window semantics and per-action keys.

Using a single shared instance ensures all routes share the same in-memory
counter store.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[get_settings().global_rate_limit],
    storage_uri="memory://",
)
