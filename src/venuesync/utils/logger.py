"""
Logging Module for venuesync

Provides structured logging with:
- Rotating file handlers for long-running processes
- JSON formatting for log aggregation
- Plain text console output for operators

Library modules only call get_logger(); handlers are installed once by the
application through setup_logging().

Usage:
    logger = get_logger(__name__)
    logger.info("Order placed", extra={'order_id': '123', 'price': 0.45})
"""

import logging
import logging.handlers
import os
import sys
import json
from datetime import datetime, timezone
from typing import Optional

from venuesync.config.constants import MAX_LOG_FILE_SIZE, LOG_BACKUP_COUNT
from venuesync.config.settings import get_settings


_RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName', 'relativeCreated',
    'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
    'getMessage', 'taskName', 'asctime',
})


class JSONFormatter(logging.Formatter):
    """Custom formatter that outputs structured JSON logs"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line_number': record.lineno,
            'process_id': record.process,
        }

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': self.formatException(record.exc_info)
            }

        # Fields passed via logger.info(..., extra={...})
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            if isinstance(value, (str, int, float, bool, type(None), dict, list)):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class PlainTextFormatter(logging.Formatter):
    """Simple text formatter for readable console output"""

    def format(self, record: logging.LogRecord) -> str:
        record.asctime = self.formatTime(record, self.datefmt)
        line = (
            f"{record.asctime} | {record.levelname:8} | "
            f"{record.name}:{record.funcName}:{record.lineno} | "
            f"{record.getMessage()}"
        )
        if record.exc_info:
            return f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    structured: Optional[bool] = None
) -> None:
    """
    Configure logging for an application embedding venuesync.

    Sets up:
    - Console handler: Plain text for operator visibility
    - File handler: Rotating files (JSON when structured)

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_file: Log file path; empty string disables it
        structured: Use JSON formatting for the file handler

    Arguments left as None come from get_settings() (VENUESYNC_LOG_LEVEL,
    VENUESYNC_LOG_FILE, VENUESYNC_STRUCTURED_LOGGING).

    Raises:
        ValueError: If invalid log level specified
    """
    if log_level is None or log_file is None or structured is None:
        settings = get_settings()
        log_level = settings.log_level if log_level is None else log_level
        log_file = settings.log_file if log_file is None else log_file
        structured = settings.structured_logging if structured is None else structured

    level = log_level.upper()
    filepath = log_file
    use_json = structured

    valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
    if level not in valid_levels:
        raise ValueError(f"Invalid log level: {level}. Must be one of {valid_levels}")

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level))

    # Avoid duplicate handlers on repeated setup
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level))
    console_handler.setFormatter(PlainTextFormatter(datefmt='%Y-%m-%d %H:%M:%S'))
    root_logger.addHandler(console_handler)

    if filepath:
        log_dir = os.path.dirname(filepath)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filepath,
            maxBytes=MAX_LOG_FILE_SIZE,
            backupCount=LOG_BACKUP_COUNT
        )
        file_handler.setLevel(getattr(logging, level))
        if use_json:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(PlainTextFormatter(datefmt='%Y-%m-%d %H:%M:%S'))
        root_logger.addHandler(file_handler)

    get_logger(__name__).info(
        "Logging initialized",
        extra={
            'log_level': level,
            'log_file': filepath,
            'structured_logging': use_json,
        }
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Example:
        logger = get_logger(__name__)
        logger.error("Order failed", exc_info=True)
    """
    return logging.getLogger(name)


def log_trade_event(
    logger: logging.Logger,
    event_type: str,
    **details
) -> None:
    """
    Log a trading event with structured information.

    Example:
        log_trade_event(logger, 'ORDER_PLACED', order_id='123', price=0.45)
    """
    details['event_type'] = event_type
    logger.info(f"Trade event: {event_type}", extra=details)


def log_error_with_context(
    logger: logging.Logger,
    message: str,
    error: BaseException,
    **context
) -> None:
    """
    Log an error with full context and exception details.

    Example:
        except InvalidOrderError as e:
            log_error_with_context(logger, "Failed to place order", e, market='m1')
    """
    context['error_type'] = type(error).__name__
    context['error_message'] = str(error)
    logger.error(message, exc_info=error, extra=context)
