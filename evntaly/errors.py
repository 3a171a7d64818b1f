"""Exception types raised by the Evntaly SDK.

Only construction-time problems and precondition violations are raised.
Expected runtime outcomes (a rejected webhook, an unknown span id, a
sampled-out event) are returned as values by the operations themselves.
"""

from __future__ import annotations


class EvntalyError(Exception):
    """Base class for all SDK errors."""

    pass


class ConfigurationError(EvntalyError, ValueError):
    """Raised when the SDK is configured with invalid or missing options."""

    pass


class PreconditionError(EvntalyError):
    """Raised when an operation is invoked in a state that does not allow it."""

    pass


class NotConnectedError(PreconditionError):
    """Raised when a realtime operation requires a live connection."""

    pass


class RealtimeConnectionError(EvntalyError):
    """Raised when the realtime socket cannot be opened."""

    def __init__(self, message: str, url: str | None = None, attempts: int = 1) -> None:
        super().__init__(message)
        self.url = url
        self.attempts = attempts


class ReconnectCancelled(EvntalyError):
    """Raised when a reconnect loop is abandoned through its cancel event."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Reconnect cancelled after {attempts} attempt(s)")
        self.attempts = attempts
