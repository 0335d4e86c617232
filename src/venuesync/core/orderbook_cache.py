"""
Orderbook Cache - latest bid/ask depth per asset

Responsibilities:
-----------------
1. OrderbookSnapshot: full-depth book for one asset at one instant
2. OrderbookCache: assetId -> latest snapshot, last-write-wins

Every inbound update replaces the stored snapshot wholesale (full-book
replace, never a diff-apply). No history is retained.

Usage:
------
```python
cache = OrderbookCache()
cache.update('token-yes', OrderbookSnapshot.from_levels(bids, asks, 'token-yes', 'm1'))

if cache.has_all_data(['token-yes', 'token-no']):
    mid = cache.mid_price('token-yes')
```
"""

import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from venuesync.utils.logger import get_logger


logger = get_logger(__name__)

PriceLevel = Tuple[float, float]


# ============================================================================
# Data Structures
# ============================================================================

@dataclass
class OrderbookSnapshot:
    """
    Complete bid/ask depth for one tradable asset.

    Invariants (enforced by the producer, see from_levels):
    - bids sorted by price descending, asks ascending
    - no level with zero/negative price or size
    """
    asset_id: str
    market_id: str = ""
    bids: List[PriceLevel] = field(default_factory=list)
    asks: List[PriceLevel] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_levels(
        cls,
        raw_bids: Optional[Iterable[Any]],
        raw_asks: Optional[Iterable[Any]],
        asset_id: str,
        market_id: str = "",
        timestamp: Optional[float] = None
    ) -> 'OrderbookSnapshot':
        """
        Build a normalized snapshot from raw venue levels.

        Levels may be {'price': '0.5', 'size': '10'} dicts or (price, size)
        pairs. Unparseable and non-positive levels are dropped.
        """
        bids = _normalize_levels(raw_bids)
        asks = _normalize_levels(raw_asks)
        bids.sort(key=lambda level: level[0], reverse=True)
        asks.sort(key=lambda level: level[0])
        return cls(
            asset_id=asset_id,
            market_id=market_id,
            bids=bids,
            asks=asks,
            timestamp=time.time() if timestamp is None else timestamp,
        )

    @property
    def best_bid(self) -> Optional[float]:
        return self.bids[0][0] if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.asks[0][0] if self.asks else None

    @property
    def mid_price(self) -> Optional[float]:
        bid, ask = self.best_bid, self.best_ask
        if bid is None or ask is None:
            return None
        return (bid + ask) / 2.0

    @property
    def spread(self) -> Optional[float]:
        bid, ask = self.best_bid, self.best_ask
        if bid is None or ask is None:
            return None
        return ask - bid

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging / serialization"""
        return {
            'asset_id': self.asset_id,
            'market_id': self.market_id,
            'bids': [list(level) for level in self.bids],
            'asks': [list(level) for level in self.asks],
            'timestamp': self.timestamp,
        }


def _normalize_levels(raw_levels: Optional[Iterable[Any]]) -> List[PriceLevel]:
    levels: List[PriceLevel] = []
    for raw in raw_levels or ():
        try:
            if isinstance(raw, dict):
                price, size = float(raw['price']), float(raw['size'])
            else:
                price, size = float(raw[0]), float(raw[1])
        except (KeyError, IndexError, TypeError, ValueError):
            logger.debug(f"Dropping malformed price level: {raw!r}")
            continue
        if price > 0 and size > 0:
            levels.append((price, size))
    return levels


# ============================================================================
# OrderbookCache
# ============================================================================

class OrderbookCache:
    """
    In-memory per-asset store of the latest known depth.

    Written only by the streaming client's message path and read by
    strategies. A Lock guards the map so reads from worker threads stay
    consistent; under a single event loop it is never contended.

    Stale-frame policy:
    -------------------
    By default an update unconditionally replaces the stored snapshot, even
    if its timestamp is older (out-of-order delivery is not detected).
    With reject_out_of_order=True, a snapshot whose timestamp is not newer
    than the cached one is rejected and update() returns False.
    """

    def __init__(self, reject_out_of_order: bool = False):
        self._books: Dict[str, OrderbookSnapshot] = {}
        self._lock = Lock()
        self.reject_out_of_order = reject_out_of_order

    def update(self, asset_id: str, snapshot: OrderbookSnapshot) -> bool:
        """
        Store snapshot as the latest book for asset_id.

        Returns:
            True if stored, False if rejected as out-of-order
        """
        with self._lock:
            if self.reject_out_of_order:
                existing = self._books.get(asset_id)
                if existing is not None and snapshot.timestamp <= existing.timestamp:
                    logger.debug(
                        f"Rejected out-of-order book for {asset_id[:8]}... "
                        f"(incoming: {snapshot.timestamp:.3f}, cached: {existing.timestamp:.3f})"
                    )
                    return False
            self._books[asset_id] = snapshot
            return True

    def get(self, asset_id: str) -> Optional[OrderbookSnapshot]:
        with self._lock:
            return self._books.get(asset_id)

    def best_bid(self, asset_id: str) -> Optional[float]:
        snapshot = self.get(asset_id)
        return snapshot.best_bid if snapshot else None

    def best_ask(self, asset_id: str) -> Optional[float]:
        snapshot = self.get(asset_id)
        return snapshot.best_ask if snapshot else None

    def get_best_bid_ask(self, asset_id: str) -> Tuple[Optional[float], Optional[float]]:
        snapshot = self.get(asset_id)
        if snapshot is None:
            return None, None
        return snapshot.best_bid, snapshot.best_ask

    def mid_price(self, asset_id: str) -> Optional[float]:
        snapshot = self.get(asset_id)
        return snapshot.mid_price if snapshot else None

    def spread(self, asset_id: str) -> Optional[float]:
        snapshot = self.get(asset_id)
        return snapshot.spread if snapshot else None

    def has_data(self, asset_id: str) -> bool:
        """
        True iff both sides of the cached book are non-empty.

        Distinguishes "no snapshot yet" / "empty book" from a quotable book,
        which best_bid/best_ask alone cannot do.
        """
        snapshot = self.get(asset_id)
        if snapshot is None:
            return False
        return bool(snapshot.bids) and bool(snapshot.asks)

    def has_all_data(self, asset_ids: Sequence[str]) -> bool:
        """Readiness gate: has_data for every asset"""
        return all(self.has_data(asset_id) for asset_id in asset_ids)

    def remove(self, asset_id: str) -> None:
        with self._lock:
            self._books.pop(asset_id, None)

    def clear(self) -> None:
        with self._lock:
            self._books.clear()

    def asset_ids(self) -> List[str]:
        with self._lock:
            return list(self._books.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._books)

    def __contains__(self, asset_id: object) -> bool:
        with self._lock:
            return asset_id in self._books
