"""Base classes for event transports.

A transport delivers accepted events to the Evntaly service (or anywhere
else). The SDK treats it as an opaque collaborator: it only needs to know
whether a submission succeeded.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum

from evntaly.core.event import Event


class SubmitResult(Enum):
    """Result of a submit operation."""

    SUCCESS = "success"
    FAILURE = "failure"
    RETRY = "retry"


class BaseTransport(ABC):
    """Abstract base class for event transports.

    Implementations must handle serialization, delivery and their own error
    handling, and report the outcome as a ``SubmitResult``.
    """

    @abstractmethod
    def submit(self, event: Event) -> SubmitResult:
        """Submit a single event.

        Args:
            event: The event to deliver

        Returns:
            SubmitResult describing the outcome
        """
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Flush pending data and release resources."""
        pass
