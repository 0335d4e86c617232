"""
Test Configuration Module
Provides fixtures and shared test utilities
"""

import asyncio
import json
import os
import sys
from unittest.mock import AsyncMock, Mock

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), 'src'))

from venuesync.core.models import Market, Order, OrderSide
from venuesync.core.orderbook_cache import OrderbookSnapshot
from venuesync.core.request_dispatcher import RequestDispatcher
from venuesync.core.streaming_client import OrderbookStreamClient


# ============================================================================
# Fake WebSocket transport
# ============================================================================

_CLOSE = object()


class FakeWebSocket:
    """In-memory stand-in for a websockets connection"""

    def __init__(self):
        self.sent = []
        self.pings = 0
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, data):
        if self.closed:
            raise OSError("socket is closed")
        self.sent.append(data)

    async def ping(self):
        self.pings += 1

    async def close(self):
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(_CLOSE)

    def feed(self, frame):
        """Queue an inbound frame (str/bytes, or dict/list encoded as JSON)"""
        if isinstance(frame, (dict, list)):
            frame = json.dumps(frame)
        self._incoming.put_nowait(frame)

    def drop(self, error=None):
        """Simulate the transport going away (optionally with an error)"""
        self._incoming.put_nowait(error if error is not None else _CLOSE)

    def sent_json(self):
        return [json.loads(s) for s in self.sent if s.startswith(('{', '['))]

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is _CLOSE:
            self.closed = True
            raise StopAsyncIteration
        if isinstance(item, Exception):
            self.closed = True
            raise item
        return item


class FakeConnector:
    """Connector handing out FakeWebSockets; can be told to fail"""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.sockets = []
        self.urls = []

    async def __call__(self, url):
        self.urls.append(url)
        if self.failures > 0:
            self.failures -= 1
            raise OSError("connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def latest(self) -> FakeWebSocket:
        return self.sockets[-1]


class DummyStream(OrderbookStreamClient):
    """Minimal venue protocol: {"type": "book", "asset": ..., "market": ...}"""

    ws_url = 'wss://stream.example.test/ws'

    def __init__(self, *args, auth_error=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.auth_error = auth_error

    async def authenticate(self):
        if self.auth_error is not None:
            raise self.auth_error

    async def subscribe_orderbook(self, key):
        await self.send({'op': 'subscribe', 'key': key})

    async def unsubscribe_orderbook(self, key):
        await self.send({'op': 'unsubscribe', 'key': key})

    def parse_orderbook_message(self, message):
        if not isinstance(message, dict) or message.get('type') != 'book':
            return None
        if message.get('explode'):
            raise ValueError("unparseable book")
        return OrderbookSnapshot.from_levels(
            message.get('bids'),
            message.get('asks'),
            asset_id=message['asset'],
            market_id=message.get('market', message['asset']),
        )


async def wait_until(predicate, timeout: float = 1.0):
    """Poll predicate while letting background tasks run"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


def book_frame(asset='tok-yes', market='m1', bids=None, asks=None):
    return {
        'type': 'book',
        'asset': asset,
        'market': market,
        'bids': bids if bids is not None else [['0.48', '100']],
        'asks': asks if asks is not None else [['0.52', '80']],
    }


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def connector():
    """Connector producing fake sockets"""
    return FakeConnector()


@pytest.fixture
def sample_order_book():
    """Sample order book for testing"""
    return {
        'bids': [
            {'price': '0.47', 'size': '200'},
            {'price': '0.48', 'size': '100'},
        ],
        'asks': [
            {'price': '0.53', 'size': '250'},
            {'price': '0.52', 'size': '150'},
        ]
    }


@pytest.fixture
def sample_market():
    """Binary market with two CLOB tokens"""
    return Market(
        id='m1',
        question='Will BTC reach $100k by EOY?',
        outcomes=['Yes', 'No'],
        volume=250000.0,
        liquidity=50000.0,
        prices={'Yes': 0.5, 'No': 0.5},
        tick_size=0.01,
        metadata={'clobTokenIds': '["tok-yes", "tok-no"]'},
    )


@pytest.fixture
def mock_venue(sample_market):
    """Venue adapter whose calls are AsyncMocks"""
    counter = {'n': 0}

    async def create_order(params):
        counter['n'] += 1
        return Order(
            id=f"order-{counter['n']}",
            market_id=params.market_id,
            outcome=params.outcome,
            side=params.side,
            price=params.price,
            size=params.size,
        )

    venue = Mock()
    venue.id = 'mock'
    venue.name = 'Mock Venue'
    venue.fetch_market = AsyncMock(return_value=sample_market)
    venue.fetch_positions = AsyncMock(return_value=[])
    venue.fetch_open_orders = AsyncMock(return_value=[])
    venue.create_order = AsyncMock(side_effect=create_order)
    venue.cancel_order = AsyncMock(return_value=None)
    return venue


@pytest.fixture
def fast_dispatcher():
    """Dispatcher with no throttling pressure and instant retries"""
    return RequestDispatcher(
        rate_limit=10000,
        max_retries=2,
        retry_delay=0.0,
        retry_jitter=0.0,
        request_timeout=5.0,
        sleep=AsyncMock(),
    )


@pytest.fixture
def make_order():
    """Factory for open orders"""
    def _make(order_id='o1', outcome='Yes', side=OrderSide.BUY, price=0.5, size=10.0):
        return Order(id=order_id, market_id='m1', outcome=outcome, side=side, price=price, size=size)
    return _make
