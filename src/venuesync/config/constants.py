"""
Configuration Constants for venuesync

Single source of truth for default values. All constants are Final;
runtime overrides go through config.settings (environment variables).
Durations are in seconds.
"""

from typing import Final


# ============================================================================
# 1. STRATEGY ENGINE
# ============================================================================

# One refresh-and-decide cycle per second
TICK_INTERVAL_SEC: Final[float] = 1.0

DEFAULT_MAX_POSITION_SIZE: Final[float] = 100.0
DEFAULT_SPREAD_BPS: Final[float] = 100.0


# ============================================================================
# 2. REQUEST DISPATCHER (RATE LIMIT + RETRY)
# ============================================================================

# Sliding window bound shared by every outbound call of one dispatcher
REQUESTS_PER_SECOND: Final[int] = 10
RATE_LIMIT_WINDOW_SEC: Final[float] = 1.0

# delay(attempt) = RETRY_BASE_DELAY * RETRY_BACKOFF_MULTIPLIER ** attempt + jitter
MAX_RETRIES: Final[int] = 3
RETRY_BASE_DELAY: Final[float] = 1.0
RETRY_BACKOFF_MULTIPLIER: Final[float] = 2.0
RETRY_JITTER_SEC: Final[float] = 1.0

# Expiry is classified as a retryable network failure
API_TIMEOUT_SEC: Final[float] = 30.0


# ============================================================================
# 3. STREAMING CLIENT
# ============================================================================

AUTO_RECONNECT: Final[bool] = True
MAX_RECONNECT_ATTEMPTS: Final[int] = 999

# delay(attempt) = min(MAX_RECONNECT_DELAY_SEC, RECONNECT_DELAY_SEC * RECONNECT_BACKOFF ** (attempt - 1))
RECONNECT_DELAY_SEC: Final[float] = 3.0
RECONNECT_BACKOFF: Final[float] = 1.5
MAX_RECONNECT_DELAY_SEC: Final[float] = 60.0

# Keepalive timer, not reset by inbound traffic
HEARTBEAT_INTERVAL_SEC: Final[float] = 20.0
WS_CONNECT_TIMEOUT_SEC: Final[float] = 10.0

POLYMARKET_WEBSOCKET_URL: Final[str] = "wss://ws-subscriptions-clob.polymarket.com/ws/market"


# ============================================================================
# 4. EVENTS
# ============================================================================

# Per-subscriber queue bound; newest events are dropped when full
EVENT_QUEUE_SIZE: Final[int] = 1000


# ============================================================================
# 5. LOGGING
# ============================================================================

LOG_LEVEL: Final[str] = 'INFO'
LOG_FILE_PATH: Final[str] = 'logs/venuesync.log'
MAX_LOG_FILE_SIZE: Final[int] = 50 * 1024 * 1024
LOG_BACKUP_COUNT: Final[int] = 10
STRUCTURED_LOGGING: Final[bool] = True


# ============================================================================
# 6. PRICES
# ============================================================================

MIN_PRICE: Final[float] = 0.01
MAX_PRICE: Final[float] = 0.99
DEFAULT_TICK_SIZE: Final[float] = 0.01
