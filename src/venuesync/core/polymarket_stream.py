"""
Polymarket CLOB orderbook stream

Concrete OrderbookStreamClient for the Polymarket market channel.

Markets are watched by a caller-chosen key (usually the condition id)
mapped to the CLOB token id the venue streams books for. Watching a token
id directly also works; the key is then the token id itself.

Book message format:
    {
        "event_type": "book",
        "asset_id": "<token id>",
        "bids": [{"price": "0.48", "size": "100"}, ...],   # or "buys"
        "asks": [{"price": "0.52", "size": "80"}, ...],    # or "sells"
        "timestamp": "1700000000000"                       # ms
    }
"""

import time
from typing import Any, Dict, Optional

from venuesync.config.constants import POLYMARKET_WEBSOCKET_URL
from venuesync.core.orderbook_cache import OrderbookSnapshot
from venuesync.core.streaming_client import OrderbookCallback, OrderbookStreamClient
from venuesync.utils.logger import get_logger


logger = get_logger(__name__)


class PolymarketOrderbookStream(OrderbookStreamClient):
    """Orderbook stream for the Polymarket CLOB market channel"""

    ws_url = POLYMARKET_WEBSOCKET_URL

    def __init__(self, api_key: Optional[str] = None, ws_url: Optional[str] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.api_key = api_key
        if ws_url:
            self.ws_url = ws_url
        # market key -> token id
        self._asset_by_market: Dict[str, str] = {}

    async def watch_orderbook_with_asset(
        self,
        market_id: str,
        asset_id: str,
        callback: OrderbookCallback
    ) -> None:
        """Watch market_id whose book is streamed under token asset_id"""
        self._asset_by_market[market_id] = asset_id
        await self.watch(market_id, callback)

    async def unwatch(self, key: str) -> None:
        await super().unwatch(key)
        self._asset_by_market.pop(key, None)

    async def authenticate(self) -> None:
        if self.api_key:
            await self.send({'type': 'auth', 'apiKey': self.api_key})

    async def subscribe_orderbook(self, key: str) -> None:
        asset_id = self._asset_by_market.get(key, key)
        await self.send({
            'type': 'subscribe',
            'channel': 'book',
            'assets_ids': [asset_id],
        })
        logger.debug(f"📡 Subscribed to book: {asset_id[:16]}...")

    async def unsubscribe_orderbook(self, key: str) -> None:
        asset_id = self._asset_by_market.get(key, key)
        await self.send({
            'type': 'unsubscribe',
            'channel': 'book',
            'assets_ids': [asset_id],
        })

    async def send_heartbeat(self) -> None:
        await self._send_raw('PING')

    def parse_orderbook_message(self, message: Any) -> Optional[OrderbookSnapshot]:
        if not isinstance(message, dict) or message.get('event_type') != 'book':
            return None

        asset_id = message.get('asset_id')
        if not asset_id:
            return None

        market_id = self._market_for_asset(asset_id)
        if market_id is None:
            return None

        # Normalize 'buys'/'sells' to 'bids'/'asks'
        raw_bids = message.get('bids')
        if raw_bids is None:
            raw_bids = message.get('buys')
        raw_asks = message.get('asks')
        if raw_asks is None:
            raw_asks = message.get('sells')

        return OrderbookSnapshot.from_levels(
            raw_bids,
            raw_asks,
            asset_id=asset_id,
            market_id=market_id,
            timestamp=_parse_timestamp(message.get('timestamp')),
        )

    def _market_for_asset(self, asset_id: str) -> Optional[str]:
        for market_id, mapped in self._asset_by_market.items():
            if mapped == asset_id:
                return market_id
        if asset_id in self._subscriptions:
            return asset_id
        return None


def _parse_timestamp(raw: Any) -> float:
    """Venue timestamps are epoch milliseconds; fall back to local time"""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return time.time()
    return value / 1000.0 if value > 1e11 else value
