"""
Streaming Client - reconnecting orderbook WebSocket

Responsibilities:
-----------------
1. Owns ONE persistent WebSocket connection plus venue authentication
2. Keeps a subscription set (key -> callback) that is replayed on every
   successful (re)connection
3. Parses inbound frames into OrderbookSnapshots, writes them to the shared
   OrderbookCache and dispatches them to the registered callback
4. Reconnects with capped exponential backoff

State machine:
--------------
    DISCONNECTED --connect()--> CONNECTING --open + auth ok--> CONNECTED
    CONNECTED --transport close/error (auto-reconnect)--> RECONNECTING
    RECONNECTING --backoff elapsed--> CONNECTING
    CONNECTING --attempt failed--> RECONNECTING (inside the reconnect loop)
    CONNECTING --attempt failed--> DISCONNECTED (user-initiated connect)
    any state --disconnect()--> CLOSED (terminal)
    RECONNECTING --max attempts exhausted--> CLOSED (+ PERMANENTLY_DISCONNECTED event)

    delay(attempt) = min(max_reconnect_delay, reconnect_delay * reconnect_backoff ** (attempt - 1))

The attempt counter resets to 0 on every transition into CONNECTED.

Heartbeat:
----------
While CONNECTED an independent task sends a keepalive every
heartbeat_interval seconds. Inbound traffic does not reset it; a dead link
is detected by the reader seeing the transport close.

Failure isolation:
------------------
A malformed frame or a failing callback is logged (and emitted as an ERROR
event for callbacks) but never stops the reader. Frames are handled
strictly in arrival order.
"""

import asyncio
import inspect
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple, Union

import websockets
from websockets.exceptions import WebSocketException

from venuesync.config import constants
from venuesync.core.events import EventChannel, EventType
from venuesync.core.orderbook_cache import OrderbookCache, OrderbookSnapshot
from venuesync.utils.logger import get_logger
from venuesync.utils.exceptions import (
    NetworkError,
    StreamClosedError,
)


logger = get_logger(__name__)

OrderbookCallback = Callable[[str, OrderbookSnapshot], Union[None, Awaitable[None]]]
Connector = Callable[[str], Awaitable[Any]]

# Frames filtered before JSON parsing
CONTROL_FRAMES = frozenset({'', 'PING', 'PONG'})


class ConnectionState(Enum):
    """Streaming connection lifecycle"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


_STATE_EVENTS = {
    ConnectionState.CONNECTED: EventType.CONNECTED,
    ConnectionState.DISCONNECTED: EventType.DISCONNECTED,
    ConnectionState.RECONNECTING: EventType.RECONNECTING,
    ConnectionState.CLOSED: EventType.CLOSED,
}


@dataclass
class StreamConfig:
    """Reconnection, heartbeat and logging options (seconds)"""
    auto_reconnect: bool = constants.AUTO_RECONNECT
    max_reconnect_attempts: int = constants.MAX_RECONNECT_ATTEMPTS
    reconnect_delay: float = constants.RECONNECT_DELAY_SEC
    reconnect_backoff: float = constants.RECONNECT_BACKOFF
    max_reconnect_delay: float = constants.MAX_RECONNECT_DELAY_SEC
    heartbeat_interval: float = constants.HEARTBEAT_INTERVAL_SEC
    connect_timeout: float = constants.WS_CONNECT_TIMEOUT_SEC
    verbose: bool = False

    @classmethod
    def from_settings(cls, settings: Any, **overrides: Any) -> 'StreamConfig':
        """Build from a SyncSettings instance"""
        kwargs = dict(
            auto_reconnect=settings.auto_reconnect,
            max_reconnect_attempts=settings.max_reconnect_attempts,
            reconnect_delay=settings.reconnect_delay_sec,
            reconnect_backoff=settings.reconnect_backoff,
            max_reconnect_delay=settings.max_reconnect_delay_sec,
            heartbeat_interval=settings.heartbeat_interval_sec,
        )
        kwargs.update(overrides)
        return cls(**kwargs)


class OrderbookStreamClient(ABC):
    """
    Base class for venue orderbook streams.

    Subclasses provide the URL and the venue protocol: authenticate(),
    subscribe_orderbook(), unsubscribe_orderbook() and
    parse_orderbook_message(). The parsed snapshot's market_id is the
    subscription key used to find the callback.
    """

    ws_url: str = ""

    def __init__(
        self,
        config: Optional[StreamConfig] = None,
        cache: Optional[OrderbookCache] = None,
        events: Optional[EventChannel] = None,
        dispatcher: Optional[Any] = None,
        connector: Optional[Connector] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            config: Reconnect/heartbeat options
            cache: Shared OrderbookCache fed by this client
            events: Channel for connection/error events
            dispatcher: Optional RequestDispatcher for control messages
            connector: Coroutine opening the transport (defaults to websockets.connect)
            sleep: Awaitable sleep used for reconnect backoff
        """
        self.config = config or StreamConfig()
        self.cache = cache if cache is not None else OrderbookCache()
        self.events = events if events is not None else EventChannel()
        self.dispatcher = dispatcher
        self._connector = connector or self._open_websocket
        self._sleep = sleep

        self._ws: Optional[Any] = None
        self._state = ConnectionState.DISCONNECTED
        self._auto_reconnect = self.config.auto_reconnect
        self._reconnect_attempts = 0
        self._subscriptions: Dict[str, OrderbookCallback] = {}
        # Keys whose subscribe request went out on the current connection
        self._subscribed: Set[str] = set()

        self._connect_lock = asyncio.Lock()
        self._reader_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

        self.last_message_time = 0.0
        self.name = self.__class__.__name__

    # ------------------------------------------------------------------
    # Venue protocol
    # ------------------------------------------------------------------

    async def authenticate(self) -> None:
        """Authenticate the fresh connection (raise AuthenticationError on rejection)"""

    @abstractmethod
    async def subscribe_orderbook(self, key: str) -> None:
        """Send the subscribe request for key"""

    @abstractmethod
    async def unsubscribe_orderbook(self, key: str) -> None:
        """Send the unsubscribe request for key"""

    @abstractmethod
    def parse_orderbook_message(self, message: Any) -> Optional[OrderbookSnapshot]:
        """Turn one decoded frame into a snapshot, or None if it is not a book update"""

    async def send_heartbeat(self) -> None:
        """Keepalive frame; a protocol-level ping by default"""
        if self._ws is not None:
            await self._ws.ping()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def subscriptions(self) -> Tuple[str, ...]:
        return tuple(self._subscriptions)

    def reconnect_delay(self, attempt: int) -> float:
        """Backoff before the given (1-based) reconnect attempt"""
        delay = self.config.reconnect_delay * (self.config.reconnect_backoff ** (attempt - 1))
        return min(self.config.max_reconnect_delay, delay)

    async def connect(self) -> None:
        """
        Open the connection, authenticate and replay all subscriptions.

        Returns once CONNECTED.

        Raises:
            NetworkError: Transport could not be opened
            AuthenticationError: Venue rejected the credentials
            StreamClosedError: Client already reached CLOSED
        """
        async with self._connect_lock:
            if self._state is ConnectionState.CONNECTED:
                return
            if self._state is ConnectionState.CLOSED:
                raise StreamClosedError(f"{self.name} is closed")

            # A failed attempt inside the reconnect loop stays RECONNECTING
            if self._state is ConnectionState.RECONNECTING:
                fallback = ConnectionState.RECONNECTING
            else:
                fallback = ConnectionState.DISCONNECTED

            self._set_state(ConnectionState.CONNECTING)
            logger.info(f"Connecting to WebSocket: {self.ws_url}")

            try:
                self._ws = await asyncio.wait_for(
                    self._connector(self.ws_url),
                    timeout=self.config.connect_timeout
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._ws = None
                self._fall_back(fallback)
                raise NetworkError(
                    f"WebSocket connection to {self.ws_url} failed: {e}",
                    original_error=e
                ) from e

            self._subscribed = set()
            try:
                await self.authenticate()
                await self._replay_subscriptions()
            except BaseException:
                await self._close_transport()
                self._fall_back(fallback)
                raise

            if self._state is ConnectionState.CLOSED:
                # disconnect() ran while we were authenticating
                await self._close_transport()
                raise StreamClosedError(f"{self.name} was closed during connect")

            self._reconnect_attempts = 0
            self._set_state(ConnectionState.CONNECTED)
            self._reader_task = asyncio.create_task(
                self._read_loop(self._ws), name=f"{self.name}_reader"
            )
            self._start_heartbeat()

            logger.info(
                f"✅ WebSocket connected - {len(self._subscriptions)} subscription(s) active"
            )

    async def disconnect(self) -> None:
        """Close the connection for good; idempotent from any state"""
        self._auto_reconnect = False
        already_closed = self._state is ConnectionState.CLOSED
        if not already_closed:
            self._set_state(ConnectionState.CLOSED)

        self._stop_heartbeat()

        current = asyncio.current_task()
        pending = []
        for task in (self._reconnect_task, self._reader_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
                pending.append(task)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._reconnect_task = None

        await self._close_transport()

        if not already_closed:
            logger.info(f"{self.name} disconnected")

    async def watch(self, key: str, callback: OrderbookCallback) -> None:
        """
        Register callback for key (replacing any previous one) and subscribe.

        Connects first when needed. The connect replay normally carries the
        subscribe request; when the key missed the replay of the connection
        it waited on, the request is sent here.
        """
        self._subscriptions[key] = callback

        if self._state is not ConnectionState.CONNECTED:
            await self.connect()
            if key in self._subscribed or key not in self._subscriptions:
                return
            if self._state is not ConnectionState.CONNECTED:
                # Dropped again; the next replay sends it
                return

        try:
            await self.subscribe_orderbook(key)
            self._subscribed.add(key)
        except NetworkError as e:
            logger.warning(f"Subscribe for {key} failed, will be replayed on reconnect: {e}")

    async def unwatch(self, key: str) -> None:
        """Drop key's callback; unsubscribe if still connected"""
        if key not in self._subscriptions:
            return

        del self._subscriptions[key]
        self._subscribed.discard(key)

        if self._state is ConnectionState.CONNECTED:
            try:
                await self.unsubscribe_orderbook(key)
            except NetworkError as e:
                logger.warning(f"Unsubscribe for {key} failed: {e}")

    async def send(self, data: Any) -> None:
        """Send a JSON control message (through the dispatcher when configured)"""
        payload = data if isinstance(data, str) else json.dumps(data)
        if self.dispatcher is not None:
            await self.dispatcher.execute(lambda: self._send_raw(payload), name='ws_send')
        else:
            await self._send_raw(payload)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _open_websocket(self, url: str) -> Any:
        return await websockets.connect(
            url,
            ping_interval=None,  # We handle our own heartbeat
            close_timeout=10,
        )

    async def _send_raw(self, payload: str) -> None:
        ws = self._ws
        if ws is None:
            raise NetworkError(f"{self.name} is not connected")
        try:
            await ws.send(payload)
        except (WebSocketException, OSError) as e:
            raise NetworkError(f"WebSocket send failed: {e}", original_error=e) from e

    def _set_state(self, new_state: ConnectionState, payload: Any = None, emit: bool = True) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        logger.debug(f"{self.name} state: {old_state.value} -> {new_state.value}")
        event_type = _STATE_EVENTS.get(new_state)
        if emit and event_type is not None:
            self.events.emit(event_type, payload, source=self.name)

    def _fall_back(self, state: ConnectionState) -> None:
        """Leave CONNECTING after a failed attempt, unless disconnect() already closed us"""
        if self._state is ConnectionState.CLOSED:
            return
        # The reconnect loop announces its next attempt itself
        self._set_state(state, emit=state is not ConnectionState.RECONNECTING)

    async def _replay_subscriptions(self) -> None:
        # Keys registered while an earlier replay subscribe was in flight are picked up too
        while True:
            pending = [key for key in self._subscriptions if key not in self._subscribed]
            if not pending:
                return
            for key in pending:
                if key not in self._subscriptions:
                    continue
                await self.subscribe_orderbook(key)
                self._subscribed.add(key)

    async def _close_transport(self) -> None:
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except (WebSocketException, OSError) as e:
            logger.debug(f"Error while closing WebSocket: {e}")

    async def _read_loop(self, ws: Any) -> None:
        error: Optional[BaseException] = None
        try:
            async for raw in ws:
                await self._handle_message(raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e

        if ws is not self._ws:
            # Replaced or closed by disconnect()
            return
        if error is not None:
            self._handle_error(error)
        self._handle_close()

    async def _handle_message(self, raw: Any) -> None:
        self.last_message_time = time.time()

        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode('utf-8')
            except UnicodeDecodeError:
                self._log_dropped("undecodable binary frame")
                return

        text = raw.strip() if isinstance(raw, str) else ''
        if text in CONTROL_FRAMES:
            return

        try:
            message = json.loads(text)
        except ValueError:
            self._log_dropped(f"malformed frame: {text[:100]!r}")
            return

        items = message if isinstance(message, list) else [message]
        for item in items:
            try:
                snapshot = self.parse_orderbook_message(item)
            except Exception as e:
                self._log_dropped(f"unparseable message ({type(e).__name__}: {e})")
                continue
            if snapshot is not None:
                await self._dispatch(snapshot)

    async def _dispatch(self, snapshot: OrderbookSnapshot) -> None:
        self.cache.update(snapshot.asset_id, snapshot)

        key = snapshot.market_id or snapshot.asset_id
        callback = self._subscriptions.get(key)
        if callback is None:
            return

        try:
            result = callback(key, snapshot)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Orderbook callback error for {key}: {e}", exc_info=True)
            self.events.emit(EventType.ERROR, e, source=self.name)

    def _log_dropped(self, reason: str) -> None:
        if self.config.verbose:
            logger.warning(f"Dropping WebSocket frame: {reason}")
        else:
            logger.debug(f"Dropping WebSocket frame: {reason}")

    def _handle_error(self, error: BaseException) -> None:
        logger.warning(f"WebSocket error: {error}")
        self.events.emit(
            EventType.ERROR,
            NetworkError(f"WebSocket transport error: {error}", original_error=error),
            source=self.name
        )

    def _handle_close(self) -> None:
        self._stop_heartbeat()
        self._ws = None
        self._subscribed = set()

        if self._state is ConnectionState.CLOSED:
            return

        logger.warning("WebSocket connection closed")

        if not self._auto_reconnect:
            self._set_state(ConnectionState.DISCONNECTED)
            return

        task = self._reconnect_task
        if task is None or task.done() or task is asyncio.current_task():
            self._reconnect_task = asyncio.create_task(
                self._reconnect(), name=f"{self.name}_reconnect"
            )

    async def _reconnect(self) -> None:
        while self._auto_reconnect and self._state is not ConnectionState.CLOSED:
            if self._reconnect_attempts >= self.config.max_reconnect_attempts:
                logger.error(
                    f"🚨 Giving up after {self._reconnect_attempts} reconnect attempts - "
                    f"{self.name} permanently disconnected"
                )
                self._auto_reconnect = False
                self._set_state(ConnectionState.CLOSED, {'reason': 'reconnect_exhausted'})
                self.events.emit(
                    EventType.PERMANENTLY_DISCONNECTED,
                    {'attempts': self._reconnect_attempts},
                    source=self.name
                )
                return

            self._reconnect_attempts += 1
            delay = self.reconnect_delay(self._reconnect_attempts)
            payload = {'attempt': self._reconnect_attempts, 'delay': delay}
            if self._state is ConnectionState.RECONNECTING:
                # Previous attempt failed
                self.events.emit(EventType.RECONNECTING, payload, source=self.name)
            else:
                self._set_state(ConnectionState.RECONNECTING, payload)
            logger.warning(
                f"🔄 Reconnecting in {delay:.1f}s (attempt {self._reconnect_attempts})"
            )

            await self._sleep(delay)

            if not self._auto_reconnect or self._state is ConnectionState.CLOSED:
                return

            try:
                await self.connect()
                return
            except StreamClosedError:
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Reconnect attempt {self._reconnect_attempts} failed: {e}")

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(), name=f"{self.name}_heartbeat"
        )

    def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _heartbeat_loop(self) -> None:
        interval = self.config.heartbeat_interval
        while self._state is ConnectionState.CONNECTED:
            await asyncio.sleep(interval)
            if self._state is not ConnectionState.CONNECTED or self._ws is None:
                return
            try:
                await self.send_heartbeat()
                logger.debug(f"{self.name} heartbeat sent")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # The reader notices a dead transport; nothing to do here
                logger.warning(f"Heartbeat error: {e}")
