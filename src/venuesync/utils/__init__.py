"""Utils package initialization"""

from venuesync.utils.logger import get_logger, setup_logging

__all__ = [
    'get_logger',
    'setup_logging',
]
