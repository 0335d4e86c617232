"""
Custom Exception Classes for venuesync

Provides a hierarchy of specific exceptions for the failure classes a
trading program has to tell apart: transient transport problems that are
worth retrying and fatal problems that are not.

Exception Hierarchy:
├── VenueSyncError (Base)
│   ├── ConfigurationError
│   ├── AuthenticationError          (fatal)
│   ├── NetworkError                 (retryable)
│   │   └── RequestTimeoutError
│   ├── RateLimitError               (retryable, carries retry_after)
│   ├── VenueError                   (fatal by default)
│   │   └── NotFoundError
│   ├── TradingError
│   │   ├── InvalidOrderError        (fatal)
│   │   └── InsufficientFundsError   (fatal)
│   ├── StrategyError
│   └── StreamClosedError
"""

from typing import Optional, Dict, Any


class VenueSyncError(Exception):
    """
    Base exception for all venuesync errors.
    Enables catching every library error with: except VenueSyncError
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        """
        Initialize error with structured information.

        Args:
            message: Human-readable error message
            error_code: Error code for classification (e.g., 'RATE_LIMITED')
            details: Additional context dict
            original_error: Original exception that caused this (for error chaining)
        """
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        error_str = f"{self.__class__.__name__}: {self.message}"
        if self.error_code:
            error_str += f" (Code: {self.error_code})"
        if self.details:
            error_str += f" | Details: {self.details}"
        return error_str


# ============================================================================
# CONFIGURATION & AUTHENTICATION ERRORS
# ============================================================================

class ConfigurationError(VenueSyncError):
    """
    Raised when configuration is invalid or incomplete.
    Action: Fix configuration and restart
    """
    pass


class AuthenticationError(VenueSyncError):
    """
    Raised when credentials or signatures are rejected.
    Examples: Invalid API key, expired credentials, bad signature
    Action: Never retried - verify credentials
    """
    pass


# ============================================================================
# TRANSPORT ERRORS (RETRYABLE)
# ============================================================================

class NetworkError(VenueSyncError):
    """
    Raised when a transport or HTTP call fails.
    Action: Retry with exponential backoff
    """
    pass


class RequestTimeoutError(NetworkError):
    """Raised when a single request exceeds its timeout"""

    def __init__(self, message: str, timeout: Optional[float] = None, **kwargs):
        self.timeout = timeout
        super().__init__(message, error_code='REQUEST_TIMEOUT', **kwargs)


class RateLimitError(VenueSyncError):
    """
    Raised when the local throttle trips or the venue answers HTTP 429.
    retry_after is the suggested wait in seconds.
    Action: Wait at least retry_after, then retry
    """

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        self.retry_after = retry_after
        super().__init__(message, error_code='RATE_LIMITED', **kwargs)

    @property
    def retry_after_ms(self) -> Optional[float]:
        if self.retry_after is None:
            return None
        return self.retry_after * 1000.0


# ============================================================================
# VENUE ERRORS
# ============================================================================

class VenueError(VenueSyncError):
    """
    Generic venue-side failure.
    Includes HTTP status code and response data for debugging.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        self.status_code = status_code
        self.response_data = response_data
        super().__init__(message, **kwargs)


class NotFoundError(VenueError):
    """Raised when a market, order or asset does not exist on the venue"""
    pass


# ============================================================================
# TRADING & ORDER ERRORS
# ============================================================================

class TradingError(VenueSyncError):
    """Base exception for trading-related errors"""
    pass


class InvalidOrderError(TradingError):
    """
    Raised when order parameters violate venue constraints.
    Examples: Price outside (0, 1), size below minimum, unknown outcome
    Action: Fix order parameters - never retried
    """
    pass


class InsufficientFundsError(TradingError):
    """Raised when the account cannot fund an order"""

    def __init__(
        self,
        message: str,
        required: Optional[float] = None,
        available: Optional[float] = None,
        **kwargs
    ):
        self.required = required
        self.available = available
        super().__init__(message, **kwargs)


# ============================================================================
# STRATEGY & STREAM ERRORS
# ============================================================================

class StrategyError(VenueSyncError):
    """Raised when a strategy cannot start or run"""
    pass


class StreamClosedError(VenueSyncError):
    """Raised when using a streaming client that reached its terminal state"""
    pass


RETRYABLE_ERRORS = (NetworkError, RateLimitError)


def is_retryable(error: BaseException) -> bool:
    """True for transient failures (network, rate limit), False for fatal ones"""
    return isinstance(error, RETRYABLE_ERRORS)
