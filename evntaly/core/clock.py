"""Clock utilities for consistent time handling.

Wall-clock timestamps are timezone-aware UTC datetimes or integer Unix
seconds (the wire format of webhooks and realtime frames). Durations are
always measured on the monotonic clock so clock adjustments never produce
negative spans.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone


def now() -> datetime:
    """Get the current UTC time with microsecond precision.

    Example:
        >>> now().tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def unix_time() -> int:
    """Get the current time as whole Unix seconds."""
    return int(time.time())


def monotonic_ns() -> int:
    """Get monotonic time in nanoseconds, for measuring durations."""
    return time.perf_counter_ns()


def duration_ms(start_ns: int, end_ns: int) -> float:
    """Calculate duration in milliseconds from nanosecond timestamps.

    Example:
        >>> start = monotonic_ns()
        >>> duration_ms(start, start + 1_500_000)
        1.5
    """
    return (end_ns - start_ns) / 1_000_000


def from_unix(seconds: float) -> datetime:
    """Convert Unix seconds to a UTC datetime."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
