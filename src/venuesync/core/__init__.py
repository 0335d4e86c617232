"""Core package initialization"""

from venuesync.core.orderbook_cache import OrderbookCache, OrderbookSnapshot
from venuesync.core.request_dispatcher import RequestDispatcher
from venuesync.core.streaming_client import ConnectionState, OrderbookStreamClient, StreamConfig
from venuesync.core.venue_adapter import VenueAdapter

__all__ = [
    'ConnectionState',
    'OrderbookCache',
    'OrderbookSnapshot',
    'OrderbookStreamClient',
    'RequestDispatcher',
    'StreamConfig',
    'VenueAdapter',
]
