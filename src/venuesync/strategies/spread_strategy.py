"""
Spread Strategy - two-sided quoting around the mid price

Quotes the first outcome's token:
    half_spread = spread_bps / 10000 / 2
    skew        = net_position / max_position_size * skew_factor
    bid         = mid - half_spread - skew
    ask         = mid + half_spread - skew

Prices are clamped to [MIN_PRICE, MAX_PRICE] and rounded to the market's
tick size; sizes come from a USD notional. Every tick replaces the previous
quotes. The bid is withheld once long max_position_size, the ask once short.
"""

from typing import Any, Dict, Optional

from venuesync.config.constants import MAX_PRICE, MIN_PRICE
from venuesync.core.models import OrderSide
from venuesync.core.orderbook_cache import OrderbookSnapshot
from venuesync.core.polymarket_stream import PolymarketOrderbookStream
from venuesync.strategies.base_strategy import BaseStrategy, TickContext
from venuesync.utils.exceptions import StrategyError
from venuesync.utils.logger import get_logger
from venuesync.utils.price import clamp_price, format_price, round_to_tick_size


logger = get_logger(__name__)


SPREAD_STRATEGY_DEFAULTS: Dict[str, Any] = {
    'tick_interval_sec': 5.0,
    'spread_bps': 200.0,
    'order_size_usd': 10.0,
    'skew_factor': 0.1,
}


class SpreadStrategy(BaseStrategy):
    """
    Market-making example strategy

    When a stream is given, the strategy watches its token's book on start
    and disconnects the stream on stop. Otherwise the shared orderbook cache
    must be fed by someone else.
    """

    def __init__(
        self,
        venue,
        market_id: str,
        config: Optional[Dict[str, Any]] = None,
        stream: Optional[PolymarketOrderbookStream] = None,
        **kwargs: Any
    ):
        merged = {**SPREAD_STRATEGY_DEFAULTS, **(config or {})}
        if stream is not None and kwargs.get('orderbooks') is None:
            kwargs['orderbooks'] = stream.cache
        super().__init__(venue, market_id, config=merged, **kwargs)
        self.stream = stream
        self.token_id: Optional[str] = None
        self.book_updates = 0

    async def on_start(self) -> None:
        token_ids = self.market.token_ids
        if not token_ids:
            raise StrategyError(
                f"No token IDs found for market {self.market_id}",
                details={'market_id': self.market_id}
            )
        self.token_id = token_ids[0]

        if self.stream is not None:
            await self.stream.watch_orderbook_with_asset(
                self.market_id, self.token_id, self._on_orderbook
            )

        logger.info(f"Started spread strategy on {self.market.question}")

    async def on_stop(self) -> None:
        if self.stream is not None:
            await self.stream.disconnect()
        logger.info("Stopped spread strategy")

    def _on_orderbook(self, key: str, snapshot: OrderbookSnapshot) -> None:
        self.book_updates += 1

    def compute_quotes(self, mid: float, net_position: float) -> Dict[str, float]:
        """Bid/ask prices and sizes for the given mid and inventory"""
        half_spread = self.config['spread_bps'] / 10000.0 / 2.0
        max_inventory = self.config['max_position_size']
        skew = (net_position / max_inventory) * self.config['skew_factor']
        tick_size = self.market.tick_size if self.market else 0.01

        bid = round_to_tick_size(clamp_price(mid - half_spread - skew, MIN_PRICE, MAX_PRICE), tick_size)
        ask = round_to_tick_size(clamp_price(mid + half_spread - skew, MIN_PRICE, MAX_PRICE), tick_size)

        order_size_usd = self.config['order_size_usd']
        return {
            'bid': bid,
            'ask': ask,
            'bid_size': float(round(order_size_usd / bid)),
            'ask_size': float(round(order_size_usd / ask)),
            'skew': skew,
        }

    async def on_tick(self, context: TickContext) -> None:
        cache = context.orderbooks
        if self.token_id is None or cache is None or not cache.has_all_data([self.token_id]):
            logger.info("Waiting for orderbook data...")
            return

        snapshot = cache.get(self.token_id)
        mid = snapshot.mid_price
        logger.debug(
            f"Market: Bid {format_price(snapshot.best_bid, 3)} | Ask {format_price(snapshot.best_ask, 3)} | "
            f"Mid {format_price(mid, 3)} | Spread {snapshot.spread * 10000:.0f}bps"
        )

        net_position = self.get_net_position()
        quotes = self.compute_quotes(mid, net_position)
        logger.info(
            f"Quoting: Bid {format_price(quotes['bid'], 3)} x {quotes['bid_size']:.0f} | "
            f"Ask {format_price(quotes['ask'], 3)} x {quotes['ask_size']:.0f} "
            f"(inventory: {net_position}, skew: {quotes['skew']:.4f})"
        )

        await self.cancel_all_orders()

        outcome = context.market.outcomes[0]
        max_inventory = self.config['max_position_size']

        if net_position < max_inventory and quotes['bid_size'] > 0:
            await self.place_order(outcome, OrderSide.BUY, quotes['bid'], quotes['bid_size'], self.token_id)

        if net_position > -max_inventory and quotes['ask_size'] > 0:
            await self.place_order(outcome, OrderSide.SELL, quotes['ask'], quotes['ask_size'], self.token_id)
