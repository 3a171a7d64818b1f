"""Core primitives: events, sampling, spans and performance tracking."""

from evntaly.core.clock import duration_ms, from_unix, monotonic_ns, now, unix_time
from evntaly.core.event import Event, as_event, compute_fingerprint
from evntaly.core.sampler import (
    AlwaysOffSampler,
    AlwaysOnSampler,
    BaseSampler,
    DecisionCache,
    SamplingManager,
)
from evntaly.core.span import PerformanceCategory, Span, SpanNotFound
from evntaly.core.tracker import (
    InsufficientData,
    PerformanceTracker,
    TrendStats,
    TrendStatus,
)

__all__ = [
    "Event",
    "as_event",
    "compute_fingerprint",
    "BaseSampler",
    "AlwaysOnSampler",
    "AlwaysOffSampler",
    "DecisionCache",
    "SamplingManager",
    "Span",
    "SpanNotFound",
    "PerformanceCategory",
    "PerformanceTracker",
    "TrendStats",
    "TrendStatus",
    "InsufficientData",
    "now",
    "unix_time",
    "monotonic_ns",
    "duration_ms",
    "from_unix",
]
