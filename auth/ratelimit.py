"""
auth/ratelimit.py -- Sliding-window admission control per client and action.

RateLimiter keeps, per key, the timestamps of recently accepted attempts.
allow() prunes timestamps that have left the window, rejects if the window
is full, and otherwise records the attempt. The whole prune-check-record
path runs under one lock: two concurrent calls on the same key can never
both take the last free slot.

Rejected attempts are not recorded, so a client hammering a closed window
does not extend its own lockout.

Single-instance only. Counters live in process memory and reset on restart;
a horizontally scaled deployment needs a shared counter store behind the
same allow(key, max_attempts, window) signature.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitPolicy:
    """max_attempts accepted per trailing window_seconds for one action class."""

    max_attempts: int
    window_seconds: float


class RateLimiter:
    """In-memory sliding-window log keyed by arbitrary strings.

    Usage:
        limiter = RateLimiter()
        limiter.allow(f"{client_ip}:login", 5, 60)   # True until the 6th call in 60s
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, deque[float]] = {}

    def allow(self, key: str, max_attempts: int, window: float) -> bool:
        """Return True and record the attempt if key has capacity, else False."""
        with self._lock:
            now = self._clock()
            attempts = self._windows.get(key)
            if attempts is None:
                attempts = deque()
                self._windows[key] = attempts
            while attempts and now - attempts[0] >= window:
                attempts.popleft()
            if len(attempts) >= max_attempts:
                return False
            attempts.append(now)
            return True

    def check(self, key: str, policy: RateLimitPolicy) -> bool:
        return self.allow(key, policy.max_attempts, policy.window_seconds)

    def retry_after(self, key: str, window: float) -> int:
        """Seconds until the oldest recorded attempt for key leaves the window."""
        with self._lock:
            attempts = self._windows.get(key)
            if not attempts:
                return 0
            remaining = window - (self._clock() - attempts[0])
        return max(1, int(remaining + 0.999))

    def prune(self, max_window: float) -> int:
        """Drop keys whose newest attempt is older than max_window. Returns keys removed.

        Called from the background purge loop so one-off clients do not
        accumulate in memory forever.
        """
        with self._lock:
            now = self._clock()
            stale = [k for k, a in self._windows.items() if not a or now - a[-1] >= max_window]
            for key in stale:
                del self._windows[key]
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
