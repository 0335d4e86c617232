"""
Tests for the sliding-window rate limiter
"""

import pytest

from venuesync.utils.exceptions import RateLimitError
from venuesync.utils.rate_limiter import SlidingWindowRateLimiter


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class TestSlidingWindowRateLimiter:
    """Test admission and fail-fast behaviour"""

    def test_fourth_request_in_window_fails(self):
        """Test 3/sec limit rejects the 4th call with a sub-second wait"""
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(max_requests=3, window=1.0, clock=clock)

        for _ in range(3):
            limiter.check()
            clock.now += 0.1

        with pytest.raises(RateLimitError) as exc_info:
            limiter.check()

        assert 0 < exc_info.value.retry_after < 1.0
        assert exc_info.value.retry_after == pytest.approx(0.7)
        assert exc_info.value.retry_after_ms == pytest.approx(700.0)

    def test_rejected_request_is_not_recorded(self):
        """Test a failed check does not consume capacity"""
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(max_requests=1, window=1.0, clock=clock)
        limiter.check()

        for _ in range(5):
            assert limiter.try_acquire() is False

        clock.now += 1.0
        assert limiter.try_acquire() is True

    def test_window_slides(self):
        """Test old timestamps expire after the window"""
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(max_requests=2, window=1.0, clock=clock)
        limiter.check()
        clock.now += 0.5
        limiter.check()

        assert limiter.available() == 0

        clock.now += 0.5
        assert limiter.available() == 1
        limiter.check()

    def test_reset(self):
        """Test reset forgets recorded requests"""
        limiter = SlidingWindowRateLimiter(max_requests=1, clock=FakeClock())
        limiter.check()
        limiter.reset()

        assert limiter.available() == 1

    def test_invalid_arguments(self):
        """Test construction validation"""
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(max_requests=0)
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(max_requests=1, window=0)
