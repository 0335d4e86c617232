"""
Tests for RequestDispatcher retry, timeout and error classification
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest

from venuesync.config.settings import SyncSettings
from venuesync.core.request_dispatcher import RequestDispatcher, classify_error
from venuesync.utils.exceptions import (
    AuthenticationError,
    InvalidOrderError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    VenueError,
)


def make_dispatcher(**kwargs):
    defaults = dict(
        rate_limit=100,
        max_retries=3,
        retry_delay=1.0,
        retry_backoff=2.0,
        retry_jitter=0.0,
        request_timeout=5.0,
        sleep=AsyncMock(),
    )
    defaults.update(kwargs)
    return RequestDispatcher(**defaults)


def response_error(status, headers=None):
    return aiohttp.ClientResponseError(
        request_info=Mock(real_url='https://venue.test/orders'),
        history=(),
        status=status,
        message='boom',
        headers=headers,
    )


@pytest.mark.asyncio
class TestRequestDispatcherRetry:
    """Test retry behaviour"""

    async def test_success_after_two_network_failures(self):
        """Test transient failures are retried and the limiter is checked per attempt"""
        limiter = Mock(max_requests=100, window=1.0)
        dispatcher = make_dispatcher(rate_limiter=limiter)
        operation = AsyncMock(side_effect=[NetworkError("down"), NetworkError("down"), 'ok'])

        result = await dispatcher.execute(operation, name='fetch')

        assert result == 'ok'
        assert operation.await_count == 3
        assert limiter.check.call_count == 3
        assert dispatcher.total_retries == 2

    async def test_backoff_delays_without_jitter(self):
        """Test delay = base * multiplier ** attempt"""
        dispatcher = make_dispatcher()
        operation = AsyncMock(side_effect=[NetworkError("x"), NetworkError("x"), NetworkError("x"), 'ok'])

        await dispatcher.execute(operation)

        delays = [call.args[0] for call in dispatcher._sleep.await_args_list]
        assert delays == [1.0, 2.0, 4.0]

    async def test_jitter_is_bounded(self):
        """Test jitter adds at most retry_jitter seconds"""
        dispatcher = make_dispatcher(retry_jitter=0.5)

        for attempt in range(3):
            delay = dispatcher.backoff_delay(attempt)
            base = 1.0 * 2.0 ** attempt
            assert base <= delay <= base + 0.5

    async def test_non_retryable_error_propagates_immediately(self):
        """Test fatal errors are not retried"""
        dispatcher = make_dispatcher()
        operation = AsyncMock(side_effect=InvalidOrderError("bad price"))

        with pytest.raises(InvalidOrderError):
            await dispatcher.execute(operation)

        assert operation.await_count == 1
        dispatcher._sleep.assert_not_awaited()

    async def test_unknown_exception_propagates_unchanged(self):
        """Test errors outside the taxonomy are not wrapped or retried"""
        dispatcher = make_dispatcher()
        operation = AsyncMock(side_effect=KeyError('price'))

        with pytest.raises(KeyError):
            await dispatcher.execute(operation)

        assert operation.await_count == 1

    async def test_exhaustion_reraises_last_error(self):
        """Test max_retries + 1 attempts, then the last error"""
        dispatcher = make_dispatcher(max_retries=2)
        errors = [NetworkError("first"), NetworkError("second"), NetworkError("third")]
        operation = AsyncMock(side_effect=errors)

        with pytest.raises(NetworkError) as exc_info:
            await dispatcher.execute(operation)

        assert exc_info.value is errors[-1]
        assert operation.await_count == 3

    async def test_zero_retries(self):
        """Test max_retries=0 means a single attempt"""
        dispatcher = make_dispatcher(max_retries=0)
        operation = AsyncMock(side_effect=NetworkError("down"))

        with pytest.raises(NetworkError):
            await dispatcher.execute(operation)

        assert operation.await_count == 1

    async def test_local_rate_limit_is_retried_after_retry_after(self):
        """Test a throttle trip waits at least the limiter's retry_after"""
        limiter = Mock(max_requests=1, window=1.0)
        limiter.check.side_effect = [RateLimitError("full", retry_after=3.5), None]
        dispatcher = make_dispatcher(rate_limiter=limiter)
        operation = AsyncMock(return_value='ok')

        result = await dispatcher.execute(operation)

        assert result == 'ok'
        assert operation.await_count == 1
        dispatcher._sleep.assert_awaited_once_with(3.5)

    async def test_timeout_becomes_retryable_network_error(self):
        """Test a slow attempt times out as RequestTimeoutError and is retried"""
        dispatcher = make_dispatcher(request_timeout=0.01, max_retries=1)
        calls = {'n': 0}

        async def operation():
            calls['n'] += 1
            if calls['n'] == 1:
                await asyncio.sleep(1.0)
            return 'fast'

        result = await dispatcher.execute(operation)

        assert result == 'fast'
        assert calls['n'] == 2

    async def test_timeout_exhaustion(self):
        """Test repeated timeouts surface as RequestTimeoutError"""
        dispatcher = make_dispatcher(request_timeout=0.01, max_retries=0)

        async def operation():
            await asyncio.sleep(1.0)

        with pytest.raises(RequestTimeoutError) as exc_info:
            await dispatcher.execute(operation)

        assert isinstance(exc_info.value, NetworkError)
        assert exc_info.value.timeout == 0.01

    async def test_raw_connection_error_is_classified_and_retried(self):
        """Test aiohttp transport errors count as NetworkError"""
        dispatcher = make_dispatcher()
        operation = AsyncMock(side_effect=[aiohttp.ClientConnectionError("reset"), 'ok'])

        assert await dispatcher.execute(operation) == 'ok'
        assert operation.await_count == 2

    async def test_http_401_is_fatal(self):
        """Test auth failures are classified and raised without retry"""
        dispatcher = make_dispatcher()
        operation = AsyncMock(side_effect=response_error(401))

        with pytest.raises(AuthenticationError):
            await dispatcher.execute(operation)

        assert operation.await_count == 1

    async def test_call_passes_arguments(self):
        """Test call() forwards args and kwargs"""
        dispatcher = make_dispatcher()
        func = AsyncMock(return_value=[1, 2])

        result = await dispatcher.call(func, 'm1', limit=5)

        assert result == [1, 2]
        func.assert_awaited_once_with('m1', limit=5)


class TestClassifyError:
    """Test mapping of raw transport errors"""

    def test_status_codes(self):
        """Test HTTP statuses map onto the taxonomy"""
        assert isinstance(classify_error(response_error(401)), AuthenticationError)
        assert isinstance(classify_error(response_error(403)), AuthenticationError)
        assert isinstance(classify_error(response_error(404)), NotFoundError)
        assert isinstance(classify_error(response_error(503)), NetworkError)

        other = classify_error(response_error(400))
        assert isinstance(other, VenueError)
        assert other.status_code == 400

    def test_429_reads_retry_after_header(self):
        """Test venue rate limits carry the Retry-After hint"""
        error = classify_error(response_error(429, headers={'Retry-After': '2'}))

        assert isinstance(error, RateLimitError)
        assert error.retry_after == 2.0

    def test_socket_errors(self):
        """Test OS-level failures become NetworkError"""
        assert isinstance(classify_error(ConnectionResetError()), NetworkError)
        assert isinstance(classify_error(OSError("unreachable")), NetworkError)

    def test_library_errors_pass_through(self):
        """Test taxonomy errors are returned unchanged"""
        error = InvalidOrderError("bad")
        assert classify_error(error) is error

    def test_original_error_is_kept(self):
        """Test the raw error is chained"""
        raw = OSError("unreachable")
        assert classify_error(raw).original_error is raw


class TestDispatcherFromSettings:
    """Test settings wiring"""

    def test_from_settings(self):
        """Test every knob is read from settings"""
        settings = SyncSettings(
            requests_per_second=5,
            max_retries=1,
            retry_base_delay_sec=0.5,
            retry_backoff_multiplier=3.0,
            retry_jitter_sec=0.0,
            request_timeout_sec=2.0,
        )

        dispatcher = RequestDispatcher.from_settings(settings)

        assert dispatcher.rate_limiter.max_requests == 5
        assert dispatcher.max_retries == 1
        assert dispatcher.retry_delay == 0.5
        assert dispatcher.retry_backoff == 3.0
        assert dispatcher.request_timeout == 2.0

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            make_dispatcher(max_retries=-1)
