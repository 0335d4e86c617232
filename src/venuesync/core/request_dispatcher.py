"""
Request Dispatcher - shared throttle + retry for every outbound call

Wraps any venue operation (REST request or control message) with:
1. A sliding-window rate limit checked before EVERY attempt, retries
   included, so retry storms stay bounded by the same throttle
2. A per-attempt timeout; expiry counts as a transient network failure
3. Exponential backoff with bounded random jitter for NetworkError and
   RateLimitError only; every other failure propagates immediately

Retry delay:
    delay(attempt) = retry_delay * retry_backoff ** attempt + uniform(0, retry_jitter)

attempt starts at 0 for the first failure. A rate-limit trip waits at
least the limiter's retry_after.

Usage:
    dispatcher = RequestDispatcher.from_settings(get_settings())
    positions = await dispatcher.execute(lambda: venue.fetch_positions('m1'))
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp

from venuesync.config import constants
from venuesync.utils.logger import get_logger
from venuesync.utils.rate_limiter import SlidingWindowRateLimiter
from venuesync.utils.exceptions import (
    AuthenticationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    VenueError,
    VenueSyncError,
    is_retryable,
)


logger = get_logger(__name__)

T = TypeVar('T')


def classify_error(error: BaseException) -> BaseException:
    """
    Map raw transport exceptions onto the venuesync taxonomy.

    Library errors are returned unchanged. aiohttp/socket failures become
    NetworkError; HTTP status errors map by status code.
    """
    if isinstance(error, VenueSyncError):
        return error

    if isinstance(error, aiohttp.ClientResponseError):
        status = error.status
        message = f"HTTP {status}: {error.message}"
        if status == 429:
            retry_after = None
            if error.headers is not None:
                try:
                    retry_after = float(error.headers.get('Retry-After', ''))
                except ValueError:
                    retry_after = None
            return RateLimitError(message, retry_after=retry_after, original_error=error)
        if status in (401, 403):
            return AuthenticationError(message, original_error=error)
        if status == 404:
            return NotFoundError(message, status_code=status, original_error=error)
        if status >= 500:
            return NetworkError(message, error_code=f"HTTP_{status}", original_error=error)
        return VenueError(message, status_code=status, original_error=error)

    if isinstance(error, asyncio.TimeoutError):
        return RequestTimeoutError("Request timed out", original_error=error)

    if isinstance(error, (aiohttp.ClientError, ConnectionError, OSError)):
        return NetworkError(f"Transport failure: {error}", original_error=error)

    return error


class RequestDispatcher:
    """
    Rate-limited, retrying executor for venue calls.

    One dispatcher is shared by every caller that must respect the same
    request budget; it is plain instance state, never a module singleton.
    """

    def __init__(
        self,
        rate_limit: int = constants.REQUESTS_PER_SECOND,
        max_retries: int = constants.MAX_RETRIES,
        retry_delay: float = constants.RETRY_BASE_DELAY,
        retry_backoff: float = constants.RETRY_BACKOFF_MULTIPLIER,
        retry_jitter: float = constants.RETRY_JITTER_SEC,
        request_timeout: Optional[float] = constants.API_TIMEOUT_SEC,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            rate_limit: Requests per second (ignored when rate_limiter is given)
            max_retries: Retries after the first attempt (total attempts = max_retries + 1)
            retry_delay: Base delay in seconds
            retry_backoff: Backoff multiplier
            retry_jitter: Upper bound of uniform jitter in seconds
            request_timeout: Per-attempt timeout in seconds (None disables it)
            rate_limiter: Pre-built limiter to share between dispatchers
            sleep: Awaitable sleep (injectable for tests)
        """
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")

        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            max_requests=rate_limit,
            window=constants.RATE_LIMIT_WINDOW_SEC,
        )
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.retry_backoff = retry_backoff
        self.retry_jitter = retry_jitter
        self.request_timeout = request_timeout
        self._sleep = sleep

        self.total_requests = 0
        self.total_retries = 0

        logger.info(
            f"RequestDispatcher initialized - "
            f"rate limit: {self.rate_limiter.max_requests}/{self.rate_limiter.window}s, "
            f"max retries: {max_retries}, timeout: {request_timeout}s"
        )

    @classmethod
    def from_settings(cls, settings: Any, **overrides: Any) -> 'RequestDispatcher':
        """Build from a SyncSettings instance"""
        kwargs = dict(
            rate_limit=settings.requests_per_second,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_base_delay_sec,
            retry_backoff=settings.retry_backoff_multiplier,
            retry_jitter=settings.retry_jitter_sec,
            request_timeout=settings.request_timeout_sec,
        )
        kwargs.update(overrides)
        return cls(**kwargs)

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after the given (0-based) failed attempt"""
        delay = self.retry_delay * (self.retry_backoff ** attempt)
        if self.retry_jitter > 0:
            delay += random.uniform(0, self.retry_jitter)
        return delay

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        self.rate_limiter.check()
        self.total_requests += 1
        if self.request_timeout is None:
            return await operation()
        try:
            return await asyncio.wait_for(operation(), timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(
                f"Request exceeded {self.request_timeout}s",
                timeout=self.request_timeout,
                original_error=e
            ) from e

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        name: Optional[str] = None
    ) -> T:
        """
        Run operation with rate limiting and retry.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per attempt
            name: Label for log messages

        Returns:
            The operation's result

        Raises:
            The last classified error once retries are exhausted, or the first
            non-retryable error immediately
        """
        label = name or getattr(operation, '__name__', 'request')
        last_error: Optional[BaseException] = None

        for attempt in range(self.max_retries + 1):
            try:
                return await self._attempt(operation)
            except asyncio.CancelledError:
                raise
            except Exception as raw_error:
                error = classify_error(raw_error)
                last_error = error

                if not is_retryable(error):
                    if error is raw_error:
                        raise
                    raise error from raw_error

                if attempt >= self.max_retries:
                    break

                delay = self.backoff_delay(attempt)
                if isinstance(error, RateLimitError) and error.retry_after:
                    delay = max(delay, error.retry_after)

                self.total_retries += 1
                logger.warning(
                    f"{label}: attempt {attempt + 1} failed, retrying in {delay:.2f}s",
                    extra={
                        'operation': label,
                        'attempt': attempt + 1,
                        'max_retries': self.max_retries,
                        'error': str(error),
                    }
                )
                await self._sleep(delay)

        logger.error(
            f"{label} failed after {self.max_retries + 1} attempts",
            extra={'operation': label, 'attempts': self.max_retries + 1}
        )
        raise last_error

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """execute() for a coroutine function plus arguments"""
        return await self.execute(lambda: func(*args, **kwargs), name=getattr(func, '__name__', None))
