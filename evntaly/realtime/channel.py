"""Persistent realtime channel to the Evntaly push server."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from evntaly.config import DEFAULT_REALTIME_URL
from evntaly.errors import (
    NotConnectedError,
    PreconditionError,
    RealtimeConnectionError,
    ReconnectCancelled,
)
from evntaly.realtime.message import AUTH, SUBSCRIBE, UNSUBSCRIBE, RealtimeMessage
from evntaly.realtime.socket import AiohttpSocket, BaseSocket
from evntaly.registry import WILDCARD, HandlerRegistry

logger = logging.getLogger(__name__)

# Handlers receive (data, message_type, full_envelope)
MessageHandler = Callable[[Any, str, dict[str, Any]], None]
ConnectionHandler = Callable[..., None]

CONNECTION_EVENTS = ("connect", "disconnect", "error")


class ConnectionState(str, Enum):
    """Lifecycle of a realtime channel."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class RealtimeChannel:
    """
    One duplex connection to the realtime server.

    State moves ``DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED``.
    Only one connection attempt may be in flight and only one connection
    may be live; ``connect()`` in any other state raises PreconditionError.
    Messages are not buffered: ``send_message`` returns False while the
    channel is not connected and the caller decides whether to retry.

    Example:
        ```python
        channel = RealtimeChannel(
            "wss://realtime.evntaly.com",
            credentials={"developerSecret": "...", "projectToken": "..."},
        )

        @channel.handler("event.created")
        def on_created(data, message_type, envelope):
            print(data)

        await channel.connect()
        await channel.subscribe("signups")
        ```
    """

    def __init__(
        self,
        server_url: str = DEFAULT_REALTIME_URL,
        credentials: Optional[Mapping[str, Any]] = None,
        socket_factory: Callable[[], BaseSocket] = AiohttpSocket,
        connect_timeout: float = 10.0,
        initial_backoff_ms: float = 100.0,
        max_backoff_ms: float = 10000.0,
    ) -> None:
        """
        Initialize the channel. No connection is opened until connect().

        Args:
            server_url: WebSocket URL of the realtime server
            credentials: Sent in the ``auth`` message after every connect
            socket_factory: Creates a fresh socket for each connection attempt
            connect_timeout: Upper bound in seconds for one connection attempt
            initial_backoff_ms: First delay between reconnect attempts
            max_backoff_ms: Cap on the reconnect delay
        """
        if connect_timeout <= 0:
            raise ValueError(f"connect_timeout must be positive, got {connect_timeout}")

        self.server_url = server_url
        self.credentials = dict(credentials or {})
        self.connect_timeout = connect_timeout
        self.initial_backoff_ms = initial_backoff_ms
        self.max_backoff_ms = max_backoff_ms
        self._socket_factory = socket_factory
        self._socket: Optional[BaseSocket] = None
        self._state = ConnectionState.DISCONNECTED
        self._close_requested = False
        self.message_handlers: HandlerRegistry[MessageHandler] = HandlerRegistry()
        self.connection_handlers: HandlerRegistry[ConnectionHandler] = HandlerRegistry()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def on(self, message_type: str, handler: MessageHandler) -> RealtimeChannel:
        """Register a handler for a message type, or ``"*"`` for every type."""
        self.message_handlers.register(message_type, handler)
        return self

    def handler(self, message_type: str = WILDCARD) -> Callable[[MessageHandler], MessageHandler]:
        """Decorator form of on()."""

        def decorator(func: MessageHandler) -> MessageHandler:
            self.on(message_type, func)
            return func

        return decorator

    def on_connection(self, event: str, handler: ConnectionHandler) -> RealtimeChannel:
        """
        Register a connection lifecycle handler.

        Args:
            event: ``"connect"`` (called with the channel), ``"disconnect"``
                (called with close code and reason) or ``"error"`` (called
                with the exception)
            handler: Callback

        Raises:
            ValueError: If ``event`` is not a lifecycle event
        """
        if event not in CONNECTION_EVENTS:
            raise ValueError(
                f"Unknown connection event: {event}. Must be one of {', '.join(CONNECTION_EVENTS)}"
            )
        self.connection_handlers.register(event, handler)
        return self

    def _notify(self, event: str, *args: Any) -> None:
        for handler in self.connection_handlers.handlers_for(event):
            try:
                handler(*args)
            except Exception:
                logger.exception("Realtime %s handler failed", event)

    async def connect(self) -> RealtimeChannel:
        """
        Open the connection and authenticate.

        On success the ``auth`` message is sent immediately, then the
        ``"connect"`` handlers run. On failure, including an attempt that
        outlives ``connect_timeout``, the ``"error"`` handlers run and the
        error is raised. If disconnect() was called while the attempt was
        in flight, the new socket is closed and the channel stays
        DISCONNECTED.

        Raises:
            PreconditionError: If a connection is already open or opening
            RealtimeConnectionError: If the socket could not be opened
        """
        if self._state != ConnectionState.DISCONNECTED:
            raise PreconditionError(f"Cannot connect: channel is {self._state.value}")

        self._state = ConnectionState.CONNECTING
        self._close_requested = False
        socket = self._socket_factory()
        socket.on("message", self._handle_frame)
        socket.on("close", lambda code=None, reason=None: self._handle_close(socket, code, reason))

        try:
            await asyncio.wait_for(
                socket.connect(self.server_url, self.connect_timeout),
                timeout=self.connect_timeout,
            )
        except asyncio.CancelledError:
            self._state = ConnectionState.DISCONNECTED
            raise
        except Exception as e:
            self._state = ConnectionState.DISCONNECTED
            if isinstance(e, asyncio.TimeoutError):
                reason = f"timed out after {self.connect_timeout}s"
            else:
                reason = str(e) or type(e).__name__
            error = RealtimeConnectionError(
                f"Failed to connect to {self.server_url}: {reason}",
                url=self.server_url,
            )
            self._notify("error", error)
            raise error from e

        if self._close_requested:
            self._close_requested = False
            self._state = ConnectionState.DISCONNECTED
            logger.info("Disconnect requested while connecting to %s; closing", self.server_url)
            await socket.close()
            return self

        self._socket = socket
        self._state = ConnectionState.CONNECTED
        logger.info("Connected to realtime server %s", self.server_url)

        await self.send_message(AUTH, self.credentials)
        self._notify("connect", self)
        return self

    async def send_message(self, message_type: str, data: Optional[dict[str, Any]] = None) -> bool:
        """
        Send a message to the server.

        Returns:
            True if the frame was handed to the socket; False if the channel
            is not connected or the send failed
        """
        socket = self._socket
        if self._state != ConnectionState.CONNECTED or socket is None:
            return False

        frame = RealtimeMessage.create(message_type, data).encode()
        try:
            await socket.send(frame)
        except Exception as e:
            logger.warning("Failed to send realtime %s message: %s", message_type, e)
            return False
        return True

    def _handle_frame(self, raw: str) -> None:
        message = RealtimeMessage.decode(raw)
        if message is None:
            return

        envelope = message.model_dump()
        for handler in self.message_handlers.handlers_for(message.type):
            try:
                handler(message.data, message.type, envelope)
            except Exception:
                logger.exception("Realtime handler failed for message type %s", message.type)

    def _handle_close(self, socket: BaseSocket, code: Optional[int], reason: Optional[str]) -> None:
        if socket is not self._socket:
            return
        self._socket = None
        self._state = ConnectionState.DISCONNECTED
        logger.info("Realtime connection closed (code=%s, reason=%s)", code, reason)
        self._notify("disconnect", code, reason)

    async def subscribe(self, channel: str) -> bool:
        """
        Subscribe to an event channel.

        Raises:
            NotConnectedError: If the channel is not connected
        """
        if self._state != ConnectionState.CONNECTED:
            raise NotConnectedError("Cannot subscribe: Not connected to server")
        return await self.send_message(SUBSCRIBE, {"channel": channel})

    async def unsubscribe(self, channel: str) -> bool:
        return await self.send_message(UNSUBSCRIBE, {"channel": channel})

    async def subscribe_to_channel(self, channel: str, handler: MessageHandler) -> bool:
        """Register ``handler`` for messages of type ``channel`` and subscribe."""
        self.on(channel, handler)
        return await self.subscribe(channel)

    async def disconnect(self) -> None:
        """
        Close the connection. The ``"disconnect"`` handlers run once the socket reports closure.

        While a connect() is still in flight the close is recorded and
        honoured as soon as that attempt settles.
        """
        if self._state == ConnectionState.CONNECTING:
            self._close_requested = True
            return

        socket = self._socket
        if socket is None:
            return
        try:
            await socket.close()
        finally:
            if self._socket is socket:
                self._socket = None
                self._state = ConnectionState.DISCONNECTED

    async def reconnect(
        self,
        max_attempts: int = 3,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RealtimeChannel:
        """
        Try to connect up to ``max_attempts`` times with exponential backoff.

        Args:
            max_attempts: Number of connection attempts
            cancel_event: Set it to abandon remaining attempts

        Raises:
            ReconnectCancelled: If ``cancel_event`` was set before success
            RealtimeConnectionError: The last failure once attempts run out
            PreconditionError: If the channel is already connected or connecting
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        backoff_ms = self.initial_backoff_ms
        attempt = 0

        while True:
            attempt += 1
            if cancel_event is not None and cancel_event.is_set():
                raise ReconnectCancelled(attempt - 1)

            try:
                return await self.connect()
            except RealtimeConnectionError as e:
                e.attempts = attempt
                if attempt >= max_attempts:
                    logger.error("Realtime connect failed after %d attempts", max_attempts)
                    raise

            logger.warning(
                "Realtime connect failed (attempt %d/%d), backing off %.2fms",
                attempt,
                max_attempts,
                backoff_ms,
            )
            if await self._backoff(backoff_ms / 1000, cancel_event):
                raise ReconnectCancelled(attempt)
            backoff_ms = min(backoff_ms * 2, self.max_backoff_ms)

    @staticmethod
    async def _backoff(delay: float, cancel_event: Optional[asyncio.Event]) -> bool:
        """Sleep for ``delay`` seconds; return True if cancelled meanwhile."""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True
