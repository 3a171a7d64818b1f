"""Sampling strategies for event collection.

Sampling reduces volume and cost by dropping a share of low-value events
before they reach the transport. Decisions are keyed by event identity and
cached, so retries and duplicates of one event are treated consistently.
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from collections import OrderedDict
from threading import Lock
from typing import Any, Mapping, Optional, Union

from evntaly.config import SamplingConfig, clamp_rate
from evntaly.core.event import Event, compute_fingerprint

logger = logging.getLogger(__name__)

# Title fragments that mark an event as error-like and always worth keeping
ERROR_KEYWORDS = ("error", "exception", "fail")

DEFAULT_CACHE_SIZE = 10_000

EventLike = Union[Event, Mapping[str, Any]]


class BaseSampler(ABC):
    """Abstract base class for event samplers."""

    @abstractmethod
    def should_sample(self, event: EventLike) -> bool:
        """Determine if an event should be transmitted.

        Args:
            event: The event (or its dict form) to decide on

        Returns:
            True if the event should be sent, False otherwise
        """
        pass


class AlwaysOnSampler(BaseSampler):
    """Sampler that keeps every event. Used when sampling is not configured."""

    def should_sample(self, event: EventLike) -> bool:
        return True


class AlwaysOffSampler(BaseSampler):
    """Sampler that drops every event."""

    def should_sample(self, event: EventLike) -> bool:
        return False


class DecisionCache:
    """Bounded LRU map of fingerprint -> sampling decision.

    A decision never changes while it is cached. Once ``max_size`` entries
    are held, the least recently used decision is evicted, after which the
    same fingerprint may be decided afresh.
    """

    def __init__(self, max_size: int = DEFAULT_CACHE_SIZE) -> None:
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size = max_size
        self._decisions: OrderedDict[str, bool] = OrderedDict()
        self._lock = Lock()

    def get(self, fingerprint: str) -> Optional[bool]:
        with self._lock:
            decision = self._decisions.get(fingerprint)
            if decision is not None:
                self._decisions.move_to_end(fingerprint)
            return decision

    def setdefault(self, fingerprint: str, decision: bool) -> bool:
        """Store ``decision`` unless one is already cached; return the cached one.

        Two threads racing on the same fingerprint both end up with the
        decision stored first.
        """
        with self._lock:
            existing = self._decisions.get(fingerprint)
            if existing is not None:
                self._decisions.move_to_end(fingerprint)
                return existing

            self._decisions[fingerprint] = decision
            if len(self._decisions) > self.max_size:
                self._decisions.popitem(last=False)
            return decision

    def clear(self) -> None:
        with self._lock:
            self._decisions.clear()

    def __len__(self) -> int:
        return len(self._decisions)

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._decisions


class SamplingManager(BaseSampler):
    """Rate-based sampler with priority bypass and per-type rates.

    Decision order for an event not yet in the cache:

    1. Priority events (title, type or any tag listed in ``priority_events``,
       or a title containing "error", "exception" or "fail") are kept.
    2. Otherwise the type-specific rate applies when one is configured,
       else the global rate.
    3. A uniform draw in [0, 1] is compared against the rate.

    Example:
        ```python
        from evntaly.core.sampler import SamplingManager

        sampler = SamplingManager(rate=0.1, priority_events=["checkout"])
        sampler.should_sample({"title": "Page view", "type": "pageview"})
        sampler.should_sample({"title": "Order", "tags": ["checkout"]})  # True
        ```
    """

    def __init__(
        self,
        rate: float = 1.0,
        priority_events: Optional[list[str]] = None,
        type_rates: Optional[Mapping[str, float]] = None,
        cache_size: int = DEFAULT_CACHE_SIZE,
        rng: Optional[random.Random] = None,
    ) -> None:
        """Initialize the sampling manager.

        Args:
            rate: Default sampling rate; values outside [0, 1] are clamped
            priority_events: Titles, types or tags that bypass sampling
            type_rates: Sampling rates for specific event types
            cache_size: Maximum number of cached decisions
            rng: Random source (injectable for deterministic tests)
        """
        self._lock = Lock()
        self._rate = clamp_rate(rate)
        self._priority_events: frozenset[str] = frozenset(priority_events or ())
        self._type_rates: dict[str, float] = dict(type_rates or {})
        self._rng = rng or random.Random()
        self.cache = DecisionCache(max_size=cache_size)

    @classmethod
    def from_config(cls, config: SamplingConfig, **kwargs: Any) -> SamplingManager:
        return cls(
            rate=config.rate,
            priority_events=config.priority_events,
            type_rates=config.type_rates,
            **kwargs,
        )

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def priority_events(self) -> frozenset[str]:
        return self._priority_events

    @property
    def type_rates(self) -> dict[str, float]:
        return dict(self._type_rates)

    def should_sample(self, event: EventLike) -> bool:
        """Decide whether an event should be tracked.

        Args:
            event: An ``Event`` or its dict form

        Returns:
            True if the event should be tracked
        """
        fields = event.to_dict() if isinstance(event, Event) else event
        fingerprint = compute_fingerprint(fields)

        cached = self.cache.get(fingerprint)
        if cached is not None:
            return cached

        if self._is_high_priority(fields):
            decision = True
        else:
            rate = self._rate_for(fields)
            with self._lock:
                draw = self._rng.random()
            decision = draw <= rate

        decision = self.cache.setdefault(fingerprint, decision)
        logger.debug("Sampling decision for %s: %s", fingerprint, decision)
        return decision

    def _is_high_priority(self, event: Mapping[str, Any]) -> bool:
        # Dict events are unvalidated; only string fields can name a priority
        priority = self._priority_events
        title = event.get("title")
        event_type = event.get("type")

        if isinstance(title, str) and title in priority:
            return True
        if isinstance(event_type, str) and event_type in priority:
            return True

        tags = event.get("tags")
        if isinstance(tags, (list, tuple, set, frozenset)):
            if any(isinstance(tag, str) and tag in priority for tag in tags):
                return True

        if isinstance(title, str):
            lowered = title.lower()
            if any(keyword in lowered for keyword in ERROR_KEYWORDS):
                return True

        return False

    def _rate_for(self, event: Mapping[str, Any]) -> float:
        event_type = event.get("type")
        type_rates = self._type_rates
        if isinstance(event_type, str) and event_type in type_rates:
            return clamp_rate(type_rates[event_type])
        return self._rate

    def set_sampling_rate(self, rate: float) -> SamplingManager:
        """Replace the default sampling rate (clamped to [0, 1])."""
        with self._lock:
            self._rate = clamp_rate(rate)
        return self

    def set_priority_events(self, events: list[str]) -> SamplingManager:
        """Replace the list of titles, types or tags that bypass sampling."""
        with self._lock:
            self._priority_events = frozenset(events)
        return self

    def set_type_rates(self, type_rates: Mapping[str, float]) -> SamplingManager:
        """Replace the per-type sampling rates."""
        with self._lock:
            self._type_rates = dict(type_rates)
        return self
