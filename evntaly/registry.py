"""Ordered handler registry shared by webhook and realtime dispatch."""

from __future__ import annotations

from threading import Lock
from typing import Callable, Generic, TypeVar

WILDCARD = "*"

H = TypeVar("H", bound=Callable[..., None])


class HandlerRegistry(Generic[H]):
    """Map of key -> handlers, kept in registration order.

    Handlers registered under ``"*"`` receive every key. ``handlers_for``
    returns a snapshot, so handlers may register or unregister others while
    a dispatch is running.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[H]] = {}
        self._lock = Lock()

    def register(self, key: str, handler: H) -> None:
        if not callable(handler):
            raise TypeError(f"Handler for {key!r} must be callable")
        with self._lock:
            self._handlers.setdefault(key, []).append(handler)

    def unregister(self, key: str, handler: H) -> bool:
        """Remove the first registration of ``handler`` under ``key``."""
        with self._lock:
            handlers = self._handlers.get(key)
            if not handlers or handler not in handlers:
                return False
            handlers.remove(handler)
            if not handlers:
                del self._handlers[key]
            return True

    def handlers_for(self, key: str) -> list[H]:
        """Handlers for ``key`` followed by wildcard handlers."""
        with self._lock:
            handlers = list(self._handlers.get(key, ()))
            if key != WILDCARD:
                handlers.extend(self._handlers.get(WILDCARD, ()))
            return handlers

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._handlers)

    def as_dict(self) -> dict[str, list[H]]:
        with self._lock:
            return {key: list(handlers) for key, handlers in self._handlers.items()}

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def __len__(self) -> int:
        return sum(len(handlers) for handlers in self._handlers.values())
