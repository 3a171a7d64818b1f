"""Span implementation for timing application operations."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from evntaly.core.clock import now


class PerformanceCategory(str, Enum):
    """Latency classification of a completed span."""

    SLOW = "slow"
    WARNING = "warning"
    ACCEPTABLE = "acceptable"
    GOOD = "good"


def new_span_id() -> str:
    """Generate a process-unique span id."""
    return f"span_{uuid.uuid4().hex}"


@dataclass(frozen=True)
class SpanNotFound:
    """Result of an operation on an unknown or already ended span id."""

    span_id: str

    def __bool__(self) -> bool:
        return False


class Span:
    """A named, timed interval with attributes.

    Spans are immutable after being ended. Any attempt to modify an ended span
    will raise a RuntimeError.
    """

    __slots__ = (
        "span_id",
        "name",
        "parent_span_id",
        "started_at",
        "ended_at",
        "duration_ms",
        "attributes",
        "category",
        "children",
        "start_ns",
        "_ended",
    )

    def __init__(
        self,
        name: str,
        span_id: Optional[str] = None,
        parent_span_id: Optional[str] = None,
        started_at: Optional[datetime] = None,
        start_ns: int = 0,
        attributes: Optional[dict[str, Any]] = None,
    ) -> None:
        """Initialize a new span.

        Args:
            name: Operation name
            span_id: Unique identifier (generated if not provided)
            parent_span_id: Id of the enclosing span, if any
            started_at: Wall-clock start (uses current time if not provided)
            start_ns: Monotonic start in nanoseconds, used for the duration
            attributes: Key-value pairs of metadata
        """
        self.span_id = span_id or new_span_id()
        self.name = name
        self.parent_span_id = parent_span_id
        self.started_at = started_at or now()
        self.ended_at: Optional[datetime] = None
        self.duration_ms: Optional[float] = None
        self.attributes: dict[str, Any] = dict(attributes or {})
        self.category: Optional[PerformanceCategory] = None
        self.children: list[str] = []
        self.start_ns = start_ns
        self._ended = False

    @property
    def ended(self) -> bool:
        return self._ended

    def _check_ended(self) -> None:
        if self._ended:
            raise RuntimeError(
                f"Cannot modify span '{self.name}' (ID: {self.span_id}) after it has ended"
            )

    def set_attribute(self, key: str, value: Any) -> None:
        """Set an attribute on the span.

        Raises:
            RuntimeError: If the span has already ended
        """
        self._check_ended()
        self.attributes[key] = value

    def add_child(self, span_id: str) -> None:
        self._check_ended()
        self.children.append(span_id)

    def end(
        self,
        duration_ms: float,
        category: PerformanceCategory,
        attributes: Optional[dict[str, Any]] = None,
        end_time: Optional[datetime] = None,
    ) -> None:
        """Close the span. A span can only be ended once.

        Args:
            duration_ms: Measured duration in milliseconds
            category: Performance classification of the duration
            attributes: Extra attributes merged in before closing
            end_time: Wall-clock end (uses current time if not provided)

        Raises:
            RuntimeError: If the span has already ended
        """
        self._check_ended()
        if attributes:
            self.attributes.update(attributes)
        self.ended_at = end_time or now()
        self.duration_ms = max(0.0, duration_ms)
        self.category = category
        self._ended = True

    def to_dict(self) -> dict[str, Any]:
        """Convert span to dictionary representation."""
        return {
            "span_id": self.span_id,
            "name": self.name,
            "parent_span_id": self.parent_span_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_ms": self.duration_ms,
            "performance_category": self.category.value if self.category else None,
            "attributes": self.attributes,
            "children": list(self.children),
        }

    def __repr__(self) -> str:
        return (
            f"Span(span_id={self.span_id!r}, name={self.name!r}, "
            f"duration_ms={self.duration_ms!r}, category={self.category!r})"
        )
