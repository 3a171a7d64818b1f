"""Socket collaborators for the realtime channel."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import aiohttp

logger = logging.getLogger(__name__)

SOCKET_EVENTS = ("message", "close")


class BaseSocket(ABC):
    """
    Duplex text socket used by RealtimeChannel.

    Implementations report inbound frames through ``"message"`` listeners
    (called with the raw text) and closure, whether initiated locally or by
    the server, through ``"close"`` listeners (called with an optional code
    and reason). Each socket instance is connected at most once.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[..., None]]] = {
            event: [] for event in SOCKET_EVENTS
        }

    def on(self, event_name: str, handler: Callable[..., None]) -> None:
        """Register a listener for ``"message"`` or ``"close"``."""
        if event_name not in self._listeners:
            raise ValueError(f"Unknown socket event: {event_name}")
        self._listeners[event_name].append(handler)

    def _emit(self, event_name: str, *args: Any) -> None:
        for handler in list(self._listeners[event_name]):
            try:
                handler(*args)
            except Exception:
                logger.exception("Socket %s listener failed", event_name)

    @abstractmethod
    async def connect(self, url: str, timeout: float) -> None:
        """Open the connection.

        Raises:
            Exception: Any failure to connect within ``timeout`` seconds
        """
        pass

    @abstractmethod
    async def send(self, text: str) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class AiohttpSocket(BaseSocket):
    """
    WebSocket implementation on top of ``aiohttp``.

    A reader task pumps text frames into the ``"message"`` listeners until
    the connection closes, then fires ``"close"`` exactly once.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        heartbeat: Optional[float] = 30.0,
    ) -> None:
        """
        Args:
            session: Session to connect with (a private one is created and
                closed with the socket when not provided)
            heartbeat: Ping interval in seconds, or None to disable
        """
        super().__init__()
        self._session = session
        self._owns_session = session is None
        self._heartbeat = heartbeat
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task[None]] = None

    async def connect(self, url: str, timeout: float) -> None:
        if self._ws is not None:
            raise RuntimeError("Socket is already connected")

        if self._session is None:
            self._session = aiohttp.ClientSession()

        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(url, heartbeat=self._heartbeat),
                timeout=timeout,
            )
        except BaseException:
            await self._release_session()
            raise

        self._reader = asyncio.create_task(self._read_loop(self._ws))

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        reason: Optional[str] = None
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._emit("message", msg.data)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    self._emit("message", msg.data.decode("utf-8", errors="replace"))
                elif msg.type == aiohttp.WSMsgType.CLOSE:
                    reason = msg.extra or None
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.warning("Realtime socket error: %s", ws.exception())
                    break
        finally:
            self._ws = None
            await self._release_session()
            self._emit("close", ws.close_code, reason)

    async def send(self, text: str) -> None:
        if self._ws is None:
            raise ConnectionError("Socket is not connected")
        await self._ws.send_str(text)

    async def close(self) -> None:
        ws = self._ws
        if ws is not None:
            await ws.close()
        reader = self._reader
        # close() may be called from a listener running inside the reader
        if reader is not None and reader is not asyncio.current_task():
            self._reader = None
            await reader

    async def _release_session(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
