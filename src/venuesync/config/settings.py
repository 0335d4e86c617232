"""
Runtime Configuration

pydantic-settings based configuration. Every default comes from
config.constants and can be overridden through the environment (prefix
VENUESYNC_) or a .env file.

Usage:
    from venuesync.config.settings import get_settings

    settings = get_settings()
    dispatcher = RequestDispatcher.from_settings(settings)

    # Override via environment:
    # export VENUESYNC_REQUESTS_PER_SECOND=5
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator

from venuesync.config import constants


class SyncSettings(BaseSettings):
    """
    Settings for the streaming client, request dispatcher and strategy engine.

    All durations are in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix='VENUESYNC_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )

    # ============================================================================
    # STRATEGY ENGINE
    # ============================================================================

    tick_interval_sec: float = Field(
        default=constants.TICK_INTERVAL_SEC,
        description="Interval between strategy ticks",
        gt=0.0
    )

    max_position_size: float = Field(
        default=constants.DEFAULT_MAX_POSITION_SIZE,
        description="Per-strategy position cap (shares)",
        gt=0.0
    )

    spread_bps: float = Field(
        default=constants.DEFAULT_SPREAD_BPS,
        description="Default quoting spread in basis points",
        ge=0.0
    )

    # ============================================================================
    # REQUEST DISPATCHER
    # ============================================================================

    requests_per_second: int = Field(
        default=constants.REQUESTS_PER_SECOND,
        description="Sliding-window bound on outbound requests",
        ge=1
    )

    max_retries: int = Field(
        default=constants.MAX_RETRIES,
        description="Retries after the first attempt for transient failures",
        ge=0
    )

    retry_base_delay_sec: float = Field(
        default=constants.RETRY_BASE_DELAY,
        description="Base retry delay",
        ge=0.0
    )

    retry_backoff_multiplier: float = Field(
        default=constants.RETRY_BACKOFF_MULTIPLIER,
        description="Exponential growth factor between retries",
        ge=1.0
    )

    retry_jitter_sec: float = Field(
        default=constants.RETRY_JITTER_SEC,
        description="Upper bound of the random jitter added to each retry delay",
        ge=0.0
    )

    request_timeout_sec: float = Field(
        default=constants.API_TIMEOUT_SEC,
        description="Per-request timeout (expiry is retried as a network error)",
        gt=0.0
    )

    # ============================================================================
    # STREAMING CLIENT
    # ============================================================================

    auto_reconnect: bool = Field(
        default=constants.AUTO_RECONNECT,
        description="Reconnect automatically after transport loss"
    )

    max_reconnect_attempts: int = Field(
        default=constants.MAX_RECONNECT_ATTEMPTS,
        description="Attempts before settling permanently in CLOSED",
        ge=0
    )

    reconnect_delay_sec: float = Field(
        default=constants.RECONNECT_DELAY_SEC,
        description="Base reconnect delay",
        ge=0.0
    )

    reconnect_backoff: float = Field(
        default=constants.RECONNECT_BACKOFF,
        description="Growth factor of the reconnect delay",
        ge=1.0
    )

    max_reconnect_delay_sec: float = Field(
        default=constants.MAX_RECONNECT_DELAY_SEC,
        description="Cap on the reconnect delay",
        ge=0.0
    )

    heartbeat_interval_sec: float = Field(
        default=constants.HEARTBEAT_INTERVAL_SEC,
        description="Keepalive interval while connected",
        gt=0.0
    )

    event_queue_size: int = Field(
        default=constants.EVENT_QUEUE_SIZE,
        description="Per-subscriber event queue bound",
        ge=1
    )

    # ============================================================================
    # LOGGING
    # ============================================================================

    log_level: str = Field(default=constants.LOG_LEVEL)
    log_file: str = Field(default=constants.LOG_FILE_PATH)
    structured_logging: bool = Field(default=constants.STRUCTURED_LOGGING)

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name"""
        level = v.upper()
        if level not in {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    def model_post_init(self, __context):
        """Validate cross-field constraints after all fields are set"""
        if self.max_reconnect_delay_sec < self.reconnect_delay_sec:
            raise ValueError(
                f"max_reconnect_delay_sec ({self.max_reconnect_delay_sec}) must be >= "
                f"reconnect_delay_sec ({self.reconnect_delay_sec})"
            )


# Singleton instance
_settings: Optional[SyncSettings] = None


def get_settings() -> SyncSettings:
    """
    Get singleton settings instance.

    Example:
        >>> settings = get_settings()
        >>> settings.requests_per_second
        10
    """
    global _settings
    if _settings is None:
        _settings = SyncSettings()
    return _settings


def reload_settings() -> SyncSettings:
    """Force reload settings from environment"""
    global _settings
    _settings = SyncSettings()
    return _settings


__all__ = ['get_settings', 'reload_settings', 'SyncSettings']
