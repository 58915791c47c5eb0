"""
Update Dispatcher
Client side of the push-update connection: one socket, a channel subscription
registry, per-channel handlers and reconnect with backoff.
"""

import asyncio
import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple
import websockets
from websockets.exceptions import ConnectionClosed
from tradedesk.core.config import Settings, get_realtime_config
from tradedesk.core.exceptions import (
    ConnectionFailure,
    FrameParseError,
    ReconnectExhausted,
    UnknownMessageType,
)
from tradedesk.core.logging import get_logger, log_connection_event
from tradedesk.realtime.backoff import LinearBackoff, build_backoff
from tradedesk.realtime.messages import (
    CONTROL_MESSAGE_TYPES,
    FIXED_CHANNELS,
    AuthFrame,
    Channel,
    Frame,
    MessageType,
    PingFrame,
    ServerFrame,
    SubscribeFrame,
    UnsubscribeFrame,
    encode_frame,
    parse_server_frame,
    quote_channel,
)

logger = get_logger(__name__)

MessageHandler = Callable[[Any], Any]
StateListener = Callable[["ConnectionState", "ConnectionState"], Any]
Connector = Callable[[str], Awaitable[Any]]


class ConnectionState(str, Enum):
    """Push connection lifecycle"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    RECONNECT_SCHEDULED = "reconnect_scheduled"
    OFFLINE = "offline"  # reconnect attempts exhausted; only connect() leaves it


async def websocket_connector(url: str):
    """Open a push connection with the websockets library"""
    return await websockets.connect(url, close_timeout=10)


class UpdateDispatcher:
    """Routes push frames from a single connection to per-channel handlers.

    Subscriptions are remembered and replayed after every reconnect. Each
    channel has at most one handler; registering another replaces it.
    Connection and parse errors are logged, never raised into callers.
    """

    def __init__(
        self,
        url: str,
        backoff=None,
        ping_interval: Optional[float] = 30.0,
        connector: Optional[Connector] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None
    ):
        self.url = url
        self.backoff = backoff or LinearBackoff()
        self.ping_interval = ping_interval
        self._connector = connector or websocket_connector
        self._sleep = sleep or asyncio.sleep

        self.state = ConnectionState.DISCONNECTED
        self.subscriptions: Set[str] = set()
        self.message_handlers: Dict[str, MessageHandler] = {}
        self.reconnect_attempts = 0
        self.user_id: Optional[int] = None

        self._connection = None
        self._closing = False
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._state_listeners: List[StateListener] = []
        self._state_waiters: List[Tuple[Tuple[ConnectionState, ...], asyncio.Future]] = []

        self.stats = {
            "connections_opened": 0,
            "connection_errors": 0,
            "reconnects_scheduled": 0,
            "frames_sent": 0,
            "frames_received": 0,
            "frames_dropped": 0,
            "handler_errors": 0,
            "errors": 0
        }

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN and self._connection is not None

    # Connection state observation

    def add_state_listener(self, listener: StateListener) -> None:
        """Call ``listener(old_state, new_state)`` on every transition"""
        self._state_listeners.append(listener)

    def remove_state_listener(self, listener: StateListener) -> None:
        if listener in self._state_listeners:
            self._state_listeners.remove(listener)

    async def wait_for_state(self, *states: ConnectionState, timeout: Optional[float] = None) -> ConnectionState:
        """Wait until the dispatcher enters one of ``states``"""
        if self.state in states:
            return self.state
        future = asyncio.get_running_loop().create_future()
        waiter = (states, future)
        self._state_waiters.append(waiter)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            if waiter in self._state_waiters:
                self._state_waiters.remove(waiter)

    def _set_state(self, new_state: ConnectionState) -> None:
        old_state = self.state
        if old_state is new_state:
            return
        self.state = new_state
        logger.debug(f"Push connection state: {old_state.value} -> {new_state.value}")

        for listener in list(self._state_listeners):
            try:
                listener(old_state, new_state)
            except Exception as e:
                logger.error(f"Error in connection state listener: {e}")

        for states, future in list(self._state_waiters):
            if new_state in states and not future.done():
                future.set_result(new_state)

    # Lifecycle

    async def connect(self) -> bool:
        """Open the connection, starting a fresh reconnect cycle.

        Also the manual way out of the ``offline`` state.
        """
        if self.is_open:
            return True
        if self.state is ConnectionState.CONNECTING:
            return False
        self._closing = False
        self._cancel_reconnect()
        self.reconnect_attempts = 0
        self._start_keepalive()
        return await self._open_connection()

    async def _open_connection(self) -> bool:
        self._set_state(ConnectionState.CONNECTING)
        logger.info(f"Connecting to push endpoint: {self.url}")

        try:
            connection = await self._connector(self.url)
        except Exception as e:
            failure = ConnectionFailure(self.url, str(e))
            logger.error(failure.message)
            self.stats["connection_errors"] += 1
            self._set_state(ConnectionState.CLOSED)
            self._schedule_reconnect()
            return False

        if self._closing:
            # disconnect() ran while the handshake was in flight
            await self._close_quietly(connection)
            return False

        self._connection = connection
        await self._on_open()
        return True

    async def _on_open(self) -> None:
        self.reconnect_attempts = 0
        self.stats["connections_opened"] += 1
        self._set_state(ConnectionState.OPEN)
        log_connection_event("open", url=self.url, subscriptions=len(self.subscriptions))

        self._reader_task = asyncio.create_task(self._listen(self._connection))

        if self.user_id is not None:
            await self._send(AuthFrame(user_id=self.user_id))
        for channel in list(self.subscriptions):
            await self._send(SubscribeFrame(channel=channel))

    async def _listen(self, connection) -> None:
        try:
            async for raw in connection:
                await self._handle_raw(raw)
        except ConnectionClosed as e:
            logger.warning(f"Push connection closed: {e}")
        except Exception as e:
            logger.error(f"Error in push listener: {e}")
            self.stats["errors"] += 1

        if connection is self._connection:
            self._on_close()

    def _on_close(self) -> None:
        self._connection = None
        self._reader_task = None
        self._set_state(ConnectionState.CLOSED)
        log_connection_event("closed", url=self.url)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._closing:
            return

        attempt = self.reconnect_attempts + 1
        if not self.backoff.allows(attempt):
            exhausted = ReconnectExhausted(self.reconnect_attempts)
            logger.error(exhausted.message)
            log_connection_event("offline", url=self.url, attempts=self.reconnect_attempts)
            self._set_state(ConnectionState.OFFLINE)
            return

        self.reconnect_attempts = attempt
        delay = self.backoff.delay(attempt)
        self.stats["reconnects_scheduled"] += 1
        self._set_state(ConnectionState.RECONNECT_SCHEDULED)

        max_attempts = getattr(self.backoff, "max_attempts", None) or "unlimited"
        logger.info(f"Reconnecting in {delay:.2f}s (attempt {attempt}/{max_attempts})")
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await self._sleep(delay)
        self._reconnect_task = None
        await self._open_connection()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None

    def _start_keepalive(self) -> None:
        if not self.ping_interval or self._keepalive_task is not None:
            return
        self._keepalive_task = asyncio.create_task(self._keepalive())

    async def _keepalive(self) -> None:
        # Fixed cadence, no pong timeout
        while True:
            await asyncio.sleep(self.ping_interval)
            await self.ping()

    async def disconnect(self) -> None:
        """Close the connection and forget every subscription and handler"""
        self._closing = True
        self._cancel_reconnect()

        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            self._keepalive_task = None

        connection = self._connection
        reader = self._reader_task
        self._connection = None
        self._reader_task = None

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
        if connection is not None:
            self._set_state(ConnectionState.CLOSING)
            await self._close_quietly(connection)
            log_connection_event("disconnected", url=self.url)

        self.subscriptions.clear()
        self.message_handlers.clear()
        self.reconnect_attempts = 0
        self.user_id = None
        self._set_state(ConnectionState.DISCONNECTED)

    async def _close_quietly(self, connection) -> None:
        try:
            await connection.close()
        except Exception as e:
            logger.warning(f"Error closing push connection: {e}")

    # Outbound frames

    async def _send(self, frame: Frame) -> bool:
        if not self.is_open:
            return False
        try:
            await self._connection.send(encode_frame(frame))
        except Exception as e:
            logger.error(f"Failed to send {frame.type} frame: {e}")
            self.stats["errors"] += 1
            return False
        self.stats["frames_sent"] += 1
        return True

    async def subscribe(self, channel: str) -> bool:
        """Record ``channel`` and send a subscribe frame if the connection is open.

        Returns True when a frame was sent.
        """
        if channel in self.subscriptions:
            return False
        self.subscriptions.add(channel)
        return await self._send(SubscribeFrame(channel=channel))

    async def unsubscribe(self, channel: str) -> bool:
        """Forget ``channel``; frames already in flight may still arrive"""
        self.subscriptions.discard(channel)
        return await self._send(UnsubscribeFrame(channel=channel))

    async def authenticate(self, user_id: int) -> bool:
        """Identify the user; re-sent automatically after every reconnect"""
        self.user_id = user_id
        return await self._send(AuthFrame(user_id=user_id))

    async def ping(self) -> bool:
        return await self._send(PingFrame())

    # Handlers

    def on_message(self, channel: str, handler: MessageHandler) -> None:
        """Register the handler for ``channel``, replacing any previous one"""
        if channel in self.message_handlers:
            logger.debug(f"Replacing handler for channel {channel}")
        self.message_handlers[channel] = handler

    def off_message(self, channel: str) -> None:
        self.message_handlers.pop(channel, None)

    # Inbound frames

    async def _handle_raw(self, raw) -> None:
        self.stats["frames_received"] += 1
        try:
            frame = parse_server_frame(raw)
        except UnknownMessageType as e:
            logger.warning(f"Dropping push frame: {e.message}")
            self.stats["frames_dropped"] += 1
            return
        except FrameParseError as e:
            logger.bind(**e.details).error(f"Error parsing push frame: {e.message}")
            self.stats["frames_dropped"] += 1
            return
        await self.dispatch(frame)

    async def dispatch(self, frame: ServerFrame) -> None:
        """Route one validated frame to its channel handler"""
        message_type = MessageType(frame.type)

        if message_type in CONTROL_MESSAGE_TYPES:
            self._log_control_frame(message_type, frame)
            return

        if message_type is MessageType.MARKET_DATA:
            channel = frame.channel
        else:
            channel = FIXED_CHANNELS[message_type]

        handler = self.message_handlers.get(channel)
        if handler is None:
            logger.debug(f"No handler for channel {channel}")
            return

        try:
            result = handler(frame.data)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Handler for channel {channel} failed: {e}")
            self.stats["handler_errors"] += 1

    def _log_control_frame(self, message_type: MessageType, frame: ServerFrame) -> None:
        if message_type is MessageType.ERROR:
            logger.error(f"Push server error: {frame.message or frame.data}")
        elif message_type is MessageType.PONG:
            logger.debug("Push server pong")
        else:
            details = frame.model_dump(by_alias=True, exclude_none=True, exclude={"type", "timestamp"})
            logger.info(f"Push {message_type.value}: {details}")

    # Convenience subscriptions

    async def subscribe_to_quote(self, symbol: str, handler: MessageHandler) -> bool:
        channel = quote_channel(symbol)
        self.on_message(channel, handler)
        return await self.subscribe(channel)

    async def _subscribe_fixed(self, channel: Channel, handler: MessageHandler) -> bool:
        self.on_message(channel.value, handler)
        return await self.subscribe(channel.value)

    async def subscribe_to_portfolio(self, handler: MessageHandler) -> bool:
        return await self._subscribe_fixed(Channel.PORTFOLIO, handler)

    async def subscribe_to_trades(self, handler: MessageHandler) -> bool:
        return await self._subscribe_fixed(Channel.TRADES, handler)

    async def subscribe_to_strategies(self, handler: MessageHandler) -> bool:
        return await self._subscribe_fixed(Channel.STRATEGIES, handler)

    async def subscribe_to_backtests(self, handler: MessageHandler) -> bool:
        return await self._subscribe_fixed(Channel.BACKTESTS, handler)

    async def subscribe_to_modules(self, handler: MessageHandler) -> bool:
        return await self._subscribe_fixed(Channel.MODULES, handler)

    async def subscribe_to_market_status(self, handler: MessageHandler) -> bool:
        return await self._subscribe_fixed(Channel.MARKET_STATUS, handler)

    def get_stats(self) -> Dict[str, Any]:
        """Get connection and routing statistics"""
        return {
            **self.stats,
            "state": self.state.value,
            "url": self.url,
            "reconnect_attempts": self.reconnect_attempts,
            "subscriptions": sorted(self.subscriptions),
            "handlers": sorted(self.message_handlers)
        }


def build_dispatcher(config: Optional[Settings] = None, **overrides) -> UpdateDispatcher:
    """Construct a dispatcher from settings; the caller owns its lifecycle"""
    realtime = get_realtime_config(config)
    options = {
        "url": realtime["url"],
        "backoff": build_backoff(config),
        "ping_interval": realtime["ping_interval"],
    }
    options.update(overrides)
    dispatcher = UpdateDispatcher(**options)
    dispatcher.user_id = realtime["default_user_id"]
    return dispatcher


__all__ = [
    "ConnectionState",
    "UpdateDispatcher",
    "websocket_connector",
    "build_dispatcher",
]
