"""
Sliding Window Rate Limiter - Fail-Fast Request Throttling

Keeps the timestamps of the requests admitted during the last window and
refuses a new request once the window is full.

Unlike a blocking limiter it never sleeps: a rejected request raises
RateLimitError carrying the time until the oldest timestamp leaves the
window, and the caller (the retry loop in RequestDispatcher) owns the wait.

Window arithmetic uses a monotonic clock so wall-clock adjustments cannot
open or freeze the window.

Example (3 req/sec):
- t=0.0, 0.1, 0.2 -> admitted
- t=0.4           -> RateLimitError(retry_after=0.6)
- t=1.05          -> admitted (t=0.0 has left the window)
"""

import time
from collections import deque
from typing import Callable, Deque, Final

from venuesync.utils.exceptions import RateLimitError


class SlidingWindowRateLimiter:
    """
    Sliding-window request counter.

    Attributes:
        max_requests: Requests admitted per window
        window: Window length in seconds
    """

    def __init__(
        self,
        max_requests: int,
        window: float = 1.0,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the limiter.

        Args:
            max_requests: Requests per window (e.g., 10 = 10 req/sec with window=1.0)
            window: Window length in seconds
            clock: Monotonic time source (injectable for tests)
        """
        if max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {max_requests}")
        if window <= 0:
            raise ValueError(f"window must be positive, got {window}")

        self.max_requests: Final[int] = max_requests
        self.window: Final[float] = window
        self._clock = clock
        self._timestamps: Deque[float] = deque()

    def _prune(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window:
            self._timestamps.popleft()

    def check(self) -> None:
        """
        Admit one request or fail fast.

        Raises:
            RateLimitError: Window is full; retry_after is the wait in seconds
        """
        now = self._clock()
        self._prune(now)

        if len(self._timestamps) >= self.max_requests:
            wait = self.window - (now - self._timestamps[0])
            if wait > 0:
                raise RateLimitError(
                    f"Rate limit reached, wait {wait * 1000:.0f}ms",
                    retry_after=wait,
                    details={'max_requests': self.max_requests, 'window': self.window}
                )

        self._timestamps.append(now)

    def try_acquire(self) -> bool:
        """
        Non-raising variant of check().

        Returns:
            True if the request was admitted, False if the window is full
        """
        try:
            self.check()
        except RateLimitError:
            return False
        return True

    def available(self) -> int:
        """Requests that would currently be admitted"""
        self._prune(self._clock())
        return max(0, self.max_requests - len(self._timestamps))

    def reset(self) -> None:
        """Forget every recorded request."""
        self._timestamps.clear()
