"""
Base Strategy Abstract Class
Periodic tick engine that every market strategy inherits from

Lifecycle:
----------
    STOPPED --start()--> RUNNING <--pause()/resume()--> PAUSED
    RUNNING | PAUSED --stop()--> STOPPED

start() fetches the market once (errors propagate, state stays STOPPED),
then a timer fires every tick_interval_sec on a fixed schedule. Each fire
launches tick(), which refreshes positions + open orders through the
RequestDispatcher and hands a TickContext to on_tick().

Guarantees:
-----------
- At most one tick runs at a time; a fire that lands while a tick is
  still in flight is skipped (and counted in skipped_ticks)
- A failing tick is logged, emitted as an ERROR event and passed to
  on_error(); the schedule keeps going
- stop() attempts to cancel EVERY locally tracked order, even when some
  cancels fail, then clears the list
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from venuesync.config import constants
from venuesync.core.events import EventChannel, EventType
from venuesync.core.models import CreateOrderParams, Market, Order, OrderSide, Position
from venuesync.core.orderbook_cache import OrderbookCache
from venuesync.core.request_dispatcher import RequestDispatcher
from venuesync.core.venue_adapter import VenueAdapter
from venuesync.utils.logger import get_logger, log_error_with_context, log_trade_event


logger = get_logger(__name__)


DEFAULT_STRATEGY_CONFIG: Dict[str, Any] = {
    'tick_interval_sec': constants.TICK_INTERVAL_SEC,
    'max_position_size': constants.DEFAULT_MAX_POSITION_SIZE,
    'spread_bps': constants.DEFAULT_SPREAD_BPS,
    'verbose': False,
}


def strategy_config_from_settings(settings: Any) -> Dict[str, Any]:
    """Strategy config dict from a SyncSettings instance"""
    return {
        'tick_interval_sec': settings.tick_interval_sec,
        'max_position_size': settings.max_position_size,
        'spread_bps': settings.spread_bps,
    }


class StrategyState(Enum):
    """Strategy lifecycle state"""
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass
class TickContext:
    """Fresh venue state handed to on_tick()"""
    market: Market
    positions: List[Position] = field(default_factory=list)
    open_orders: List[Order] = field(default_factory=list)
    orderbooks: Optional[OrderbookCache] = None


class BaseStrategy(ABC):
    """
    Abstract base class for trading strategies
    Subclasses implement on_tick() and optionally the lifecycle hooks
    """

    def __init__(
        self,
        venue: VenueAdapter,
        market_id: str,
        config: Optional[Dict[str, Any]] = None,
        dispatcher: Optional[RequestDispatcher] = None,
        orderbooks: Optional[OrderbookCache] = None,
        events: Optional[EventChannel] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Initialize strategy

        Args:
            venue: Venue adapter used for all market/order calls
            market_id: Market this strategy trades
            config: Overrides merged over DEFAULT_STRATEGY_CONFIG
            dispatcher: Shared rate-limited dispatcher (a private one is built if omitted)
            orderbooks: Shared orderbook cache exposed to on_tick()
            events: Channel for ORDER/ERROR/lifecycle events
            clock: Monotonic time source for the tick timer (event loop time by default)
            sleep: Awaitable sleep used by the tick timer
        """
        self.venue = venue
        self.market_id = market_id
        self.config: Dict[str, Any] = {**DEFAULT_STRATEGY_CONFIG, **(config or {})}
        self.dispatcher = dispatcher or RequestDispatcher()
        self.orderbooks = orderbooks
        self.events = events if events is not None else EventChannel()
        self._clock = clock
        self._sleep = sleep

        self.market: Optional[Market] = None
        self.positions: List[Position] = []
        self.open_orders: List[Order] = []

        self._state = StrategyState.STOPPED
        self._timer_task: Optional[asyncio.Task] = None
        self._tick_tasks: Set[asyncio.Task] = set()
        self._tick_in_flight = False

        self.tick_count = 0
        self.skipped_ticks = 0
        self.error_count = 0

        self.name = self.__class__.__name__
        logger.info(f"Strategy initialized: {self.name} ({market_id})")

    @abstractmethod
    async def on_tick(self, context: TickContext) -> None:
        """
        Per-tick strategy logic
        Must be implemented by subclasses

        Args:
            context: Market plus freshly refreshed positions and open orders
        """
        pass

    # ========================================================================
    # Lifecycle
    # ========================================================================

    @property
    def state(self) -> StrategyState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is StrategyState.RUNNING

    async def start(self) -> None:
        """
        Fetch the market and start the tick timer

        Raises:
            Whatever venue.fetch_market raises (e.g. NotFoundError)
        """
        if self._state is not StrategyState.STOPPED:
            logger.warning(f"Strategy {self.name} is already {self._state.value}")
            return

        logger.info(f"Starting strategy: {self.name}")

        # Not retried: a missing market is fatal for this strategy
        self.market = await self.venue.fetch_market(self.market_id)

        self._state = StrategyState.RUNNING
        self._timer_task = asyncio.create_task(
            self._run_timer(), name=f"{self.name}_timer"
        )

        try:
            await self.on_start()
        except Exception:
            await self.stop()
            raise

        self.events.emit(EventType.STARTED, {'market_id': self.market_id}, source=self.name)
        logger.info(
            f"✅ Strategy {self.name} running on {self.market_id} "
            f"every {self.config['tick_interval_sec']}s"
        )

    async def stop(self) -> None:
        """Stop ticking and cancel every tracked order (idempotent)"""
        if self._state is StrategyState.STOPPED:
            return

        logger.info(f"Stopping strategy: {self.name}")
        self._state = StrategyState.STOPPED

        current = asyncio.current_task()
        pending = []
        for task in [self._timer_task, *self._tick_tasks]:
            if task is not None and task is not current and not task.done():
                task.cancel()
                pending.append(task)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._timer_task = None

        failed = await self.cancel_all_orders()

        try:
            await self.on_stop()
        except Exception as e:
            log_error_with_context(logger, f"Strategy {self.name} on_stop failed", e)

        self.events.emit(
            EventType.STOPPED,
            {'market_id': self.market_id, 'failed_cancels': len(failed)},
            source=self.name
        )
        logger.info(f"Strategy stopped: {self.name}")

    def pause(self) -> None:
        """Suspend ticking; the timer keeps its schedule"""
        if self._state is StrategyState.RUNNING:
            self._state = StrategyState.PAUSED
            self.events.emit(EventType.PAUSED, source=self.name)
            logger.info(f"⏸️  Strategy {self.name} paused")

    def resume(self) -> None:
        if self._state is StrategyState.PAUSED:
            self._state = StrategyState.RUNNING
            self.events.emit(EventType.RESUMED, source=self.name)
            logger.info(f"▶️  Strategy {self.name} resumed")

    async def on_start(self) -> None:
        """
        Hook called after the market is loaded and the timer started
        Override in subclass for custom initialization
        """
        logger.debug(f"Strategy {self.name} starting")

    async def on_stop(self) -> None:
        """
        Hook called after orders are cancelled on stop
        Override in subclass for custom cleanup
        """
        logger.debug(f"Strategy {self.name} stopping")

    async def on_error(self, error: Exception) -> None:
        """
        Hook called when a tick fails
        Override in subclass for custom error handling

        Args:
            error: The exception that occurred
        """
        logger.debug(f"Strategy {self.name} error hook: {error}")

    # ========================================================================
    # Tick engine
    # ========================================================================

    async def _run_timer(self) -> None:
        clock = self._clock or asyncio.get_running_loop().time
        next_fire = clock() + self.config['tick_interval_sec']

        while self._state is not StrategyState.STOPPED:
            await self._sleep(max(0.0, next_fire - clock()))

            interval = self.config['tick_interval_sec']
            next_fire += interval
            now = clock()
            if next_fire <= now:
                # Fell behind (blocked loop); resume on the next future slot
                missed = int((now - next_fire) // interval) + 1
                self.skipped_ticks += missed
                next_fire += missed * interval

            if self._state is StrategyState.STOPPED:
                break
            if self._state is StrategyState.PAUSED:
                continue
            if self._tick_in_flight:
                self.skipped_ticks += 1
                logger.debug(f"Strategy {self.name}: previous tick still running, skipping")
                continue

            task = asyncio.create_task(self.tick())
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)

    async def tick(self) -> bool:
        """
        Run one tick: refresh state, then on_tick()

        Returns:
            True if on_tick() completed, False if skipped or failed
        """
        if self._state is not StrategyState.RUNNING or self._tick_in_flight:
            return False

        self._tick_in_flight = True
        self.tick_count += 1
        try:
            await self.refresh_state()
            context = TickContext(
                market=self.market,
                positions=list(self.positions),
                open_orders=list(self.open_orders),
                orderbooks=self.orderbooks,
            )
            await self.on_tick(context)
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error_count += 1
            log_error_with_context(
                logger,
                f"Error in strategy {self.name} tick",
                e,
                market_id=self.market_id,
                tick=self.tick_count
            )
            self.events.emit(EventType.ERROR, e, source=self.name)
            try:
                await self.on_error(e)
            except Exception as hook_error:
                logger.error(f"Strategy {self.name} on_error hook failed: {hook_error}")
            return False
        finally:
            self._tick_in_flight = False

    async def refresh_state(self) -> None:
        """Reload positions and open orders from the venue (concurrently)"""
        positions, orders = await asyncio.gather(
            self.dispatcher.execute(
                lambda: self.venue.fetch_positions(self.market_id), name='fetch_positions'
            ),
            self.dispatcher.execute(
                lambda: self.venue.fetch_open_orders(self.market_id), name='fetch_open_orders'
            ),
        )
        self.positions = list(positions)
        self.open_orders = list(orders)

    # ========================================================================
    # Orders
    # ========================================================================

    async def place_order(
        self,
        outcome: str,
        side: OrderSide,
        price: float,
        size: float,
        token_id: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Optional[Order]:
        """
        Submit an order through the dispatcher

        Returns:
            The venue's Order, or None if submission failed (an ERROR event
            is emitted instead of raising)
        """
        request = CreateOrderParams(
            market_id=self.market_id,
            outcome=outcome,
            side=side,
            price=price,
            size=size,
            token_id=token_id,
            params=params or {},
        )

        try:
            order = await self.dispatcher.execute(
                lambda: self.venue.create_order(request), name='create_order'
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log_error_with_context(
                logger, "Failed to place order", e,
                market_id=self.market_id, outcome=outcome, side=side.value,
                price=price, size=size
            )
            self.events.emit(EventType.ERROR, e, source=self.name)
            return None

        self.open_orders.append(order)
        log_trade_event(
            logger, 'ORDER_PLACED',
            order_id=order.id, market_id=self.market_id, outcome=outcome,
            side=side.value, price=price, size=size
        )
        self.events.emit(EventType.ORDER, order, source=self.name)
        return order

    async def cancel_order(self, order_id: str) -> bool:
        """Cancel one order; True on success (it is then no longer tracked)"""
        try:
            await self.dispatcher.execute(
                lambda: self.venue.cancel_order(order_id, self.market_id), name='cancel_order'
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log_error_with_context(
                logger, "Failed to cancel order", e,
                order_id=order_id, market_id=self.market_id
            )
            self.events.emit(EventType.ERROR, e, source=self.name)
            return False

        self.open_orders = [o for o in self.open_orders if o.id != order_id]
        log_trade_event(logger, 'ORDER_CANCELLED', order_id=order_id, market_id=self.market_id)
        return True

    async def cancel_all_orders(self) -> List[Order]:
        """
        Attempt to cancel every tracked order, then clear the list

        Returns:
            Orders whose cancel failed
        """
        failed: List[Order] = []
        for order in list(self.open_orders):
            if not await self.cancel_order(order.id):
                failed.append(order)

        if failed:
            logger.warning(
                f"Strategy {self.name}: {len(failed)} order(s) could not be cancelled: "
                f"{[o.id for o in failed]}"
            )
        self.open_orders = []
        return failed

    # ========================================================================
    # Bookkeeping
    # ========================================================================

    def get_position(self, outcome: str) -> Optional[Position]:
        for position in self.positions:
            if position.outcome == outcome:
                return position
        return None

    def get_net_position(self) -> float:
        """size(first outcome) - size(second outcome); 0 for non-binary markets"""
        if self.market is None or not self.market.is_binary:
            return 0.0
        first, second = self.market.outcomes[0], self.market.outcomes[1]
        first_pos = self.get_position(first)
        second_pos = self.get_position(second)
        return (first_pos.size if first_pos else 0.0) - (second_pos.size if second_pos else 0.0)

    def get_status(self) -> Dict[str, Any]:
        """
        Get current strategy status

        Returns:
            Dictionary with strategy status information
        """
        return {
            'name': self.name,
            'market_id': self.market_id,
            'state': self._state.value,
            'is_running': self.is_running,
            'tick_count': self.tick_count,
            'skipped_ticks': self.skipped_ticks,
            'error_count': self.error_count,
            'open_orders': len(self.open_orders),
            'positions': len(self.positions),
            'config': dict(self.config),
        }

    def update_config(self, config: Dict[str, Any]) -> None:
        """
        Update strategy configuration (tick interval changes apply from the next fire)

        Args:
            config: New configuration parameters
        """
        self.config.update(config)
        logger.info(f"Strategy {self.name} config updated: {config}")
