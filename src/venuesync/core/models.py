"""
Normalized venue records

Market, Order and Position are produced by venue adapters; the engine only
does simple bookkeeping on top of them. Positions are never derived from
fills locally - the venue copy refreshed on every tick is authoritative.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class OrderSide(Enum):
    """Order side"""
    BUY = "buy"
    SELL = "sell"


class OrderStatus(Enum):
    """Order lifecycle status as reported by the venue"""
    PENDING = "pending"
    OPEN = "open"
    FILLED = "filled"
    PARTIALLY_FILLED = "partially_filled"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


# ============================================================================
# Market
# ============================================================================

@dataclass
class Market:
    """Prediction market with its outcomes and current outcome prices"""
    id: str
    question: str
    outcomes: List[str]
    volume: float = 0.0
    liquidity: float = 0.0
    prices: Dict[str, float] = field(default_factory=dict)
    tick_size: float = 0.01
    description: str = ""
    close_time: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_binary(self) -> bool:
        return len(self.outcomes) == 2

    def is_open(self, now: Optional[datetime] = None) -> bool:
        """False when the venue flagged the market closed or close_time has passed"""
        if self.metadata.get('closed'):
            return False
        if self.close_time is None:
            return True
        now = now or datetime.now(timezone.utc)
        close_time = self.close_time
        if close_time.tzinfo is None:
            close_time = close_time.replace(tzinfo=timezone.utc)
        return now < close_time

    @property
    def spread(self) -> Optional[float]:
        """Overround of a binary market: |1 - sum(outcome prices)|"""
        if not self.is_binary or len(self.prices) != 2:
            return None
        return abs(1.0 - sum(self.prices.values()))

    @property
    def token_ids(self) -> List[str]:
        """CLOB token ids from metadata (list or JSON-encoded string)"""
        token_ids = self.metadata.get('clobTokenIds')
        if not token_ids:
            return []
        if isinstance(token_ids, str):
            try:
                token_ids = json.loads(token_ids)
            except ValueError:
                return []
        if isinstance(token_ids, (list, tuple)):
            return [str(t) for t in token_ids]
        return []

    @property
    def outcome_tokens(self) -> List[Tuple[str, str]]:
        """(outcome, token_id) pairs; missing token ids are empty strings"""
        token_ids = self.token_ids
        return [
            (outcome, token_ids[i] if i < len(token_ids) else '')
            for i, outcome in enumerate(self.outcomes)
        ]


# ============================================================================
# Orders
# ============================================================================

@dataclass
class CreateOrderParams:
    """Venue-neutral order request handed to VenueAdapter.create_order"""
    market_id: str
    outcome: str
    side: OrderSide
    price: float
    size: float
    token_id: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Order:
    """Order as reported by the venue (also the local open-order mirror)"""
    id: str
    market_id: str
    outcome: str
    side: OrderSide
    price: float
    size: float
    filled: float = 0.0
    status: OrderStatus = OrderStatus.OPEN
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @property
    def remaining(self) -> float:
        return self.size - self.filled

    @property
    def is_active(self) -> bool:
        return self.status in (OrderStatus.OPEN, OrderStatus.PARTIALLY_FILLED)

    @property
    def is_filled(self) -> bool:
        return self.status is OrderStatus.FILLED or self.filled >= self.size

    @property
    def fill_percentage(self) -> float:
        if self.size == 0:
            return 0.0
        return self.filled / self.size

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'market_id': self.market_id,
            'outcome': self.outcome,
            'side': self.side.value,
            'price': self.price,
            'size': self.size,
            'filled': self.filled,
            'status': self.status.value,
        }


# ============================================================================
# Positions
# ============================================================================

@dataclass
class Position:
    """Holding in one outcome of a market"""
    market_id: str
    outcome: str
    size: float
    average_price: float
    current_price: float

    @property
    def cost_basis(self) -> float:
        return self.size * self.average_price

    @property
    def current_value(self) -> float:
        return self.size * self.current_price

    @property
    def unrealized_pnl(self) -> float:
        return self.current_value - self.cost_basis

    @property
    def unrealized_pnl_percent(self) -> float:
        if self.cost_basis == 0:
            return 0.0
        return self.unrealized_pnl / self.cost_basis * 100.0
