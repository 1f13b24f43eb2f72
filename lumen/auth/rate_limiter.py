"""Login rate limiting keyed by username.

After ``max_attempts`` consecutive failures within ``window_seconds`` the
username is locked for ``window_seconds``. Failures older than the window
decay away; a successful login resets the counter.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from lumen.errors import RateLimited

logger = logging.getLogger(__name__)


@dataclass
class _Attempts:
    count: int = 0
    last_failure: float = 0.0
    locked_until: float = 0.0


class LoginRateLimiter:
    def __init__(self, max_attempts: int = 5, window_seconds: int = 900, clock: Callable[[], float] = time.monotonic):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.clock = clock
        self._attempts: dict[str, _Attempts] = {}

    @staticmethod
    def _key(username: str) -> str:
        return (username or "").strip().lower()

    def retry_after(self, username: str) -> int:
        """Seconds until ``username`` may try again (0 if not locked)."""
        entry = self._attempts.get(self._key(username))
        if entry is None:
            return 0
        now = self.clock()
        if entry.locked_until > now:
            return math.ceil(entry.locked_until - now)
        if entry.locked_until or now - entry.last_failure > self.window_seconds:
            del self._attempts[self._key(username)]
        return 0

    def check(self, username: str) -> None:
        """Raises ``RateLimited`` while ``username`` is locked."""
        wait = self.retry_after(username)
        if wait:
            raise RateLimited(wait)

    def record_failure(self, username: str) -> None:
        key = self._key(username)
        now = self.clock()
        entry = self._attempts.get(key)
        if entry is None or now - entry.last_failure > self.window_seconds:
            entry = self._attempts[key] = _Attempts()
        entry.count += 1
        entry.last_failure = now
        if entry.count >= self.max_attempts:
            entry.locked_until = now + self.window_seconds
            logger.warning(f"Login locked for '{key}' after {entry.count} failed attempts")

    def reset(self, username: str) -> None:
        self._attempts.pop(self._key(username), None)
