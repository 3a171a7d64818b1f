"""Performance tracker for timing operations and detecting regressions."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections import OrderedDict
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from threading import Lock
from typing import Any, Callable, Iterator, Mapping, Optional, TypeVar, Union

from pydantic import ValidationError

from evntaly.config import PerformanceThresholds
from evntaly.core.clock import duration_ms, monotonic_ns, now, unix_time
from evntaly.core.event import Event
from evntaly.core.span import PerformanceCategory, Span, SpanNotFound
from evntaly.errors import ConfigurationError
from evntaly.transport.base import BaseTransport, SubmitResult

logger = logging.getLogger(__name__)

# Type variable for preserving function signatures
F = TypeVar("F", bound=Callable[..., Any])
T = TypeVar("T")

DEFAULT_MAX_COMPLETED_SPANS = 10_000
DEFAULT_TREND_WINDOW_SECONDS = 86_400
RECENT_SAMPLE_SIZE = 5
TREND_THRESHOLD_PCT = 20.0

# Categories that are reported to the transport when auto-tracking is on
REPORTED_CATEGORIES = (PerformanceCategory.SLOW, PerformanceCategory.WARNING)


class TrendStatus(str, Enum):
    """Outcome of a trend analysis."""

    REGRESSION = "regression"
    IMPROVEMENT = "improvement"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class InsufficientData:
    """Trend result when no completed span matches the operation."""

    operation: str
    message: str = "No data available for this operation"
    status: TrendStatus = TrendStatus.INSUFFICIENT_DATA

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "status": self.status.value,
            "message": self.message,
        }


@dataclass(frozen=True)
class TrendStats:
    """Duration statistics for one operation."""

    operation: str
    status: TrendStatus
    message: str
    avg_ms: float
    min_ms: float
    max_ms: float
    recent_avg_ms: float
    trend_pct: float
    sample_size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "status": self.status.value,
            "message": self.message,
            "avg_ms": self.avg_ms,
            "min_ms": self.min_ms,
            "max_ms": self.max_ms,
            "recent_avg_ms": self.recent_avg_ms,
            "trend_pct": self.trend_pct,
            "sample_size": self.sample_size,
        }


class PerformanceTracker:
    """
    Times operations as spans, classifies them, and detects regressions.

    A span moves from the active set to the completed set exactly once,
    when it is ended. Spans classified "slow" or "warning" are reported to
    the transport as ``performance`` events when auto-tracking is enabled.

    The completed set is bounded: once ``max_completed_spans`` spans are
    held, the oldest is evicted first. Call ``clear_completed()`` to drop
    history explicitly.

    Example:
        ```python
        from evntaly.core.tracker import PerformanceTracker
        from evntaly.transport import ConsoleTransport

        tracker = PerformanceTracker(transport=ConsoleTransport())

        span_id = tracker.start_span("db.query", {"table": "users"})
        rows = run_query()
        span = tracker.end_span(span_id, {"rows": len(rows)})

        with tracker.span("render") as span:
            span.set_attribute("template", "index.html")
            render()

        print(tracker.analyze_trend("db.query").to_dict())
        ```
    """

    def __init__(
        self,
        transport: Optional[BaseTransport] = None,
        auto_track: bool = True,
        thresholds: Union[PerformanceThresholds, Mapping[str, int], None] = None,
        max_completed_spans: int = DEFAULT_MAX_COMPLETED_SPANS,
        clock: Callable[[], int] = monotonic_ns,
    ) -> None:
        """
        Initialize the performance tracker.

        Args:
            transport: Where slow/warning spans are reported
            auto_track: Report slow/warning spans automatically
            thresholds: Custom thresholds in ms; missing keys keep their defaults
            max_completed_spans: Bound on retained completed spans
            clock: Monotonic nanosecond clock used for durations

        Raises:
            ConfigurationError: If thresholds are invalid, the bound is not
                positive, or auto-tracking is requested without a transport
        """
        if auto_track and transport is None:
            raise ConfigurationError("auto_track requires a transport to report spans to")
        if max_completed_spans <= 0:
            raise ConfigurationError(
                f"max_completed_spans must be positive, got {max_completed_spans}"
            )

        self.transport = transport
        self.auto_track = auto_track
        self.thresholds = self._resolve_thresholds(thresholds)
        self.max_completed_spans = max_completed_spans
        self._clock = clock
        self._lock = Lock()
        self._active: dict[str, Span] = {}
        self._completed: OrderedDict[str, Span] = OrderedDict()
        self._current_span: ContextVar[Optional[str]] = ContextVar(
            f"evntaly_current_span_{id(self)}", default=None
        )

    @staticmethod
    def _resolve_thresholds(
        thresholds: Union[PerformanceThresholds, Mapping[str, int], None],
    ) -> PerformanceThresholds:
        if thresholds is None:
            return PerformanceThresholds()
        if isinstance(thresholds, PerformanceThresholds):
            return thresholds
        try:
            return PerformanceThresholds(**dict(thresholds))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid performance thresholds: {e}") from e

    def start_span(
        self,
        name: str,
        attributes: Optional[dict[str, Any]] = None,
        parent_id: Optional[str] = None,
    ) -> str:
        """
        Start timing a new operation.

        Args:
            name: Operation name
            attributes: Initial attributes
            parent_id: Id of an active span this span is nested in

        Returns:
            The new span id
        """
        return self._open_span(name, attributes, parent_id).span_id

    def _open_span(
        self,
        name: str,
        attributes: Optional[dict[str, Any]],
        parent_id: Optional[str],
    ) -> Span:
        span = Span(
            name=name,
            parent_span_id=parent_id,
            started_at=now(),
            start_ns=self._clock(),
            attributes=attributes,
        )

        with self._lock:
            if parent_id is not None:
                parent = self._active.get(parent_id)
                if parent is not None:
                    parent.add_child(span.span_id)
            self._active[span.span_id] = span

        return span

    def end_span(
        self, span_id: str, attributes: Optional[dict[str, Any]] = None
    ) -> Union[Span, SpanNotFound]:
        """
        End timing for an operation.

        Args:
            span_id: The span id returned by start_span()
            attributes: Extra attributes merged into the span

        Returns:
            The completed span, or SpanNotFound if the id is unknown or the
            span was already ended
        """
        end_ns = self._clock()

        with self._lock:
            span = self._active.pop(span_id, None)
            if span is None:
                logger.debug("end_span called for unknown span %s", span_id)
                return SpanNotFound(span_id)

            elapsed = duration_ms(span.start_ns, end_ns)
            span.end(elapsed, self.categorize(elapsed), attributes=attributes)

            self._completed[span_id] = span
            while len(self._completed) > self.max_completed_spans:
                self._completed.popitem(last=False)

        if self.auto_track and span.category in REPORTED_CATEGORIES:
            self._report(span)

        return span

    def categorize(self, duration: float) -> PerformanceCategory:
        """Classify a duration in milliseconds against the thresholds."""
        thresholds = self.thresholds
        if duration >= thresholds.slow:
            return PerformanceCategory.SLOW
        elif duration >= thresholds.warning:
            return PerformanceCategory.WARNING
        elif duration >= thresholds.acceptable:
            return PerformanceCategory.ACCEPTABLE
        return PerformanceCategory.GOOD

    def track_span(self, span_id: str) -> bool:
        """
        Report a completed span to the transport as an event.

        Returns:
            True if the transport accepted the event
        """
        with self._lock:
            span = self._completed.get(span_id)
        if span is None:
            return False
        return self._report(span)

    def _report(self, span: Span) -> bool:
        if self.transport is None:
            return False

        category = span.category.value if span.category else "unknown"
        event = Event(
            title=f"Performance: {span.name}",
            description=f"Operation took {span.duration_ms:.2f}ms ({category})",
            type="performance",
            tags=["performance", category],
            timestamp=unix_time(),
            data={
                "operation": span.name,
                "duration_ms": span.duration_ms,
                "start_time": span.started_at.isoformat(),
                "end_time": span.ended_at.isoformat() if span.ended_at else None,
                "performance_category": category,
                "attributes": dict(span.attributes),
            },
        )

        try:
            result = self.transport.submit(event)
        except Exception as e:
            logger.warning("Failed to report span %s (%s): %s", span.span_id, span.name, e)
            return False

        if result != SubmitResult.SUCCESS:
            logger.warning(
                "Transport returned %s for span %s (%s)", result.value, span.span_id, span.name
            )
            return False
        return True

    def get_span(self, span_id: str) -> Optional[Span]:
        """Get a completed span, or None if unknown."""
        with self._lock:
            return self._completed.get(span_id)

    def get_active_span(self, span_id: str) -> Optional[Span]:
        with self._lock:
            return self._active.get(span_id)

    def get_all_spans(self) -> list[Span]:
        """Get completed spans in completion order."""
        with self._lock:
            return list(self._completed.values())

    @property
    def active_count(self) -> int:
        return len(self._active)

    def clear_completed(self) -> None:
        with self._lock:
            self._completed.clear()

    @contextmanager
    def span(
        self, name: str, attributes: Optional[dict[str, Any]] = None
    ) -> Iterator[Span]:
        """
        Time a block of code as a span.

        The span is closed on every exit path: with ``success=True`` on
        normal exit, or with ``success=False`` plus the exception class and
        message before the exception propagates. Spans opened inside the
        block are recorded as its children.

        Example:
            ```python
            with tracker.span("checkout", {"cart_size": 3}) as span:
                span.set_attribute("payment", "card")
                charge()
            ```
        """
        parent_id = self._current_span.get()
        span = self._open_span(name, attributes, parent_id)
        span_id = span.span_id
        token = self._current_span.set(span_id)

        try:
            yield span
        except BaseException as e:
            self.end_span(
                span_id,
                {
                    "success": False,
                    "error": type(e).__name__,
                    "error_message": str(e),
                },
            )
            raise
        else:
            self.end_span(span_id, {"success": True})
        finally:
            self._current_span.reset(token)

    def track_callable(
        self,
        name: str,
        body: Callable[[], T],
        attributes: Optional[dict[str, Any]] = None,
    ) -> T:
        """
        Run ``body`` inside a span and return its result.

        Exceptions raised by ``body`` are recorded on the span and re-raised
        unchanged.
        """
        with self.span(name, attributes):
            return body()

    def trace(
        self,
        name: Optional[str] = None,
        attributes: Optional[dict[str, Any]] = None,
    ) -> Callable[[F], F]:
        """
        Decorator that times every call of a sync or async function.

        Example:
            ```python
            @tracker.trace("fetch_user")
            async def fetch_user(user_id):
                ...
            ```
        """

        def decorator(func: F) -> F:
            span_name = name or func.__name__

            if asyncio.iscoroutinefunction(func):

                @functools.wraps(func)
                async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                    with self.span(span_name, attributes) as span:
                        span.set_attribute("function.name", func.__name__)
                        span.set_attribute("function.module", func.__module__)
                        return await func(*args, **kwargs)

                return async_wrapper  # type: ignore

            @functools.wraps(func)
            def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
                with self.span(span_name, attributes) as span:
                    span.set_attribute("function.name", func.__name__)
                    span.set_attribute("function.module", func.__module__)
                    return func(*args, **kwargs)

            return sync_wrapper  # type: ignore

        return decorator

    def analyze_trend(
        self,
        name: str,
        window_seconds: Optional[int] = DEFAULT_TREND_WINDOW_SECONDS,
    ) -> Union[TrendStats, InsufficientData]:
        """
        Compare recent durations of an operation against its average.

        Only completed spans that ended within the last ``window_seconds``
        are considered; pass None to scan every retained span. The last five
        matching spans form the "recent" sample.

        Returns:
            TrendStats, or InsufficientData if no span matches
        """
        with self._lock:
            spans = [s for s in self._completed.values() if s.name == name]

        if window_seconds is not None:
            cutoff = now() - timedelta(seconds=window_seconds)
            spans = [s for s in spans if s.ended_at is not None and s.ended_at >= cutoff]

        if not spans:
            return InsufficientData(operation=name)

        durations = [s.duration_ms or 0.0 for s in spans]
        avg = sum(durations) / len(durations)
        recent = durations[-RECENT_SAMPLE_SIZE:]
        recent_avg = sum(recent) / len(recent)
        trend_pct = ((recent_avg - avg) / avg) * 100 if avg > 0 else 0.0

        if trend_pct > TREND_THRESHOLD_PCT:
            status = TrendStatus.REGRESSION
            message = f"Performance degrading by {trend_pct:.1f}%"
        elif trend_pct < -TREND_THRESHOLD_PCT:
            status = TrendStatus.IMPROVEMENT
            message = f"Performance improving by {abs(trend_pct):.1f}%"
        else:
            status = TrendStatus.STABLE
            message = "Performance is stable"

        return TrendStats(
            operation=name,
            status=status,
            message=message,
            avg_ms=avg,
            min_ms=min(durations),
            max_ms=max(durations),
            recent_avg_ms=recent_avg,
            trend_pct=trend_pct,
            sample_size=len(spans),
        )
