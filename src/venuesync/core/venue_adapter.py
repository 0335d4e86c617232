"""
Venue Adapter interface

A venue adapter normalizes one platform's REST/streaming payloads into
Market/Order/Position records and performs signed order submission. Concrete
adapters live outside this package; strategies only see this interface.

Adapters raise the venuesync taxonomy so callers can separate transient from
fatal failures:
    create_order -> InvalidOrderError | AuthenticationError | NetworkError
    fetch_market -> NotFoundError when the market does not exist
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from venuesync.core.models import CreateOrderParams, Market, Order, Position


class VenueAdapter(ABC):
    """Abstract base class for venue integrations"""

    id: str = ""
    name: str = ""

    @abstractmethod
    async def fetch_markets(self, params: Optional[Dict[str, Any]] = None) -> List[Market]:
        """List markets (limit/offset/active/closed filters in params)"""

    @abstractmethod
    async def fetch_market(self, market_id: str) -> Market:
        """Fetch one market; raises NotFoundError if unknown"""

    @abstractmethod
    async def create_order(self, params: CreateOrderParams) -> Order:
        """Build, sign and submit an order"""

    @abstractmethod
    async def cancel_order(self, order_id: str, market_id: Optional[str] = None) -> Order:
        """Cancel an open order"""

    @abstractmethod
    async def fetch_order(self, order_id: str, market_id: Optional[str] = None) -> Order:
        """Fetch a single order"""

    @abstractmethod
    async def fetch_open_orders(self, market_id: Optional[str] = None) -> List[Order]:
        """Open orders, optionally for one market"""

    @abstractmethod
    async def fetch_positions(self, market_id: Optional[str] = None) -> List[Position]:
        """Positions, optionally for one market"""

    @abstractmethod
    async def fetch_balance(self) -> Dict[str, float]:
        """Balances by currency"""

    def describe(self) -> Dict[str, Any]:
        """Identity and capability flags"""
        return {
            'id': self.id,
            'name': self.name,
            'has': {
                'fetch_markets': True,
                'fetch_market': True,
                'create_order': True,
                'cancel_order': True,
                'fetch_order': True,
                'fetch_open_orders': True,
                'fetch_positions': True,
                'fetch_balance': True,
                'websocket': False,
            },
        }
