"""Tests for login rate limiting."""

import pytest

from lumen.auth.rate_limiter import LoginRateLimiter
from lumen.errors import RateLimited


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return LoginRateLimiter(max_attempts=5, window_seconds=900, clock=clock)


class TestLoginRateLimiter:
    def test_locks_after_max_failures(self, limiter):
        for _ in range(4):
            limiter.record_failure("admin")
        limiter.check("admin")

        limiter.record_failure("admin")

        with pytest.raises(RateLimited) as exc:
            limiter.check("admin")
        assert exc.value.retry_after == 900
        assert exc.value.payload() == {"retryAfter": 900}

    def test_lock_expires_after_window(self, limiter, clock):
        for _ in range(5):
            limiter.record_failure("admin")
        clock.now += 901
        limiter.check("admin")
        assert limiter.retry_after("admin") == 0

    def test_old_failures_decay(self, limiter, clock):
        for _ in range(4):
            limiter.record_failure("admin")
        clock.now += 901
        limiter.record_failure("admin")
        limiter.check("admin")

    def test_reset_clears_counter(self, limiter):
        for _ in range(4):
            limiter.record_failure("admin")
        limiter.reset("admin")
        limiter.record_failure("admin")
        limiter.check("admin")

    def test_usernames_are_case_insensitive(self, limiter):
        for _ in range(5):
            limiter.record_failure("Admin")
        with pytest.raises(RateLimited):
            limiter.check(" admin ")

    def test_other_users_unaffected(self, limiter):
        for _ in range(5):
            limiter.record_failure("admin")
        limiter.check("editor")
