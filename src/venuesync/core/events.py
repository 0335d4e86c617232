"""
Event channel for strategy and connection notifications

Consumers either subscribe a bounded asyncio.Queue or register a named
synchronous handler. Delivery order is publish order.

Overflow policy: when a subscriber's queue is full the new event is
dropped for that subscriber only (drop-newest) and counted in `dropped`,
so a slow consumer can never block the publisher.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from venuesync.config.settings import get_settings
from venuesync.utils.logger import get_logger


logger = get_logger(__name__)


class EventType(Enum):
    """Kinds of events published by strategies and streaming clients"""
    # Strategy engine
    ORDER = "order"
    ERROR = "error"
    STARTED = "started"
    STOPPED = "stopped"
    PAUSED = "paused"
    RESUMED = "resumed"
    # Streaming client
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"
    PERMANENTLY_DISCONNECTED = "permanently_disconnected"


@dataclass
class Event:
    """One notification"""
    type: EventType
    payload: Any = None
    source: str = ""
    timestamp: float = field(default_factory=time.time)


EventHandler = Callable[[Event], None]


class EventChannel:
    """
    Fan-out channel with bounded per-subscriber queues.
    """

    def __init__(self, maxsize: Optional[int] = None):
        """
        Args:
            maxsize: Default per-subscriber queue bound (VENUESYNC_EVENT_QUEUE_SIZE when None)
        """
        self.maxsize = maxsize if maxsize is not None else get_settings().event_queue_size
        self._queues: List[asyncio.Queue] = []
        self._handlers: Dict[str, Tuple[EventHandler, Optional[FrozenSet[EventType]]]] = {}
        self.dropped = 0

    @classmethod
    def from_settings(cls, settings: Any = None) -> 'EventChannel':
        """Build with the queue bound of a SyncSettings instance (or the global one)"""
        settings = settings or get_settings()
        return cls(maxsize=settings.event_queue_size)

    def subscribe(self, maxsize: Optional[int] = None) -> asyncio.Queue:
        """Return a new queue receiving every event published from now on"""
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize or self.maxsize)
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def register_handler(
        self,
        name: str,
        handler: EventHandler,
        types: Optional[Iterable[EventType]] = None
    ) -> None:
        """
        Register a synchronous callback (re-registering a name replaces it).

        Args:
            name: Unique handler name
            handler: Called with each Event, in registration order
            types: Optional filter (None = all event types)
        """
        self._handlers[name] = (handler, frozenset(types) if types is not None else None)
        logger.debug(f"Registered event handler: {name}")

    def unregister_handler(self, name: str) -> None:
        self._handlers.pop(name, None)

    def publish(self, event: Event) -> None:
        """Deliver event to every queue and handler without blocking"""
        for queue in list(self._queues):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                self.dropped += 1
                logger.warning(
                    f"Event queue full - dropping {event.type.value} event "
                    f"(dropped so far: {self.dropped})"
                )

        for name, (handler, types) in list(self._handlers.items()):
            if types is not None and event.type not in types:
                continue
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler failed ({name}): {e}", exc_info=True)

    def emit(self, event_type: EventType, payload: Any = None, source: str = "") -> Event:
        """Build and publish an Event"""
        event = Event(type=event_type, payload=payload, source=source)
        self.publish(event)
        return event
