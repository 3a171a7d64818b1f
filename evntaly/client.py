"""Session object wiring sampling, performance, webhooks and realtime together."""

from __future__ import annotations

import dataclasses
import logging
from enum import Enum
from typing import Any, Callable, Mapping, Optional, TypeVar, Union

from evntaly.config import EvntalyConfig, PerformanceThresholds
from evntaly.core.clock import unix_time
from evntaly.core.event import as_event
from evntaly.core.sampler import AlwaysOnSampler, BaseSampler, EventLike, SamplingManager
from evntaly.core.tracker import PerformanceTracker
from evntaly.errors import ConfigurationError
from evntaly.realtime.channel import MessageHandler, RealtimeChannel
from evntaly.realtime.socket import AiohttpSocket, BaseSocket
from evntaly.transport.base import BaseTransport, SubmitResult
from evntaly.webhook.manager import WebhookHandler, WebhookManager
from evntaly.webhook.verifier import Payload

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TrackResult(Enum):
    """Outcome of EvntalyClient.track()."""

    SENT = "sent"
    SAMPLED_OUT = "sampled_out"
    FAILED = "failed"

    def __bool__(self) -> bool:
        # Sampled-out events count as successfully tracked
        return self is not TrackResult.FAILED


class EvntalyClient:
    """
    One logical Evntaly session.

    The client owns every piece of mutable SDK state (decision cache, span
    stores, handler registries, realtime connection). Create one per
    session and pass it to the code that needs it; nothing is global.

    Example:
        ```python
        from evntaly import EvntalyClient
        from evntaly.transport import ConsoleTransport

        client = EvntalyClient(
            config={
                "sampling": {"rate": 0.25, "priorityEvents": ["checkout"]},
                "webhookSecret": "whsec_...",
                "trackPerformance": True,
            },
            transport=ConsoleTransport(),
        )

        client.track({"title": "Page view", "type": "pageview"})
        result = client.track_performance("db.query", run_query)
        ```
    """

    def __init__(
        self,
        transport: Optional[BaseTransport] = None,
        config: Union[EvntalyConfig, Mapping[str, Any], None] = None,
        sampler: Optional[BaseSampler] = None,
        socket_factory: Callable[[], BaseSocket] = AiohttpSocket,
    ) -> None:
        """
        Initialize the client.

        Args:
            transport: Delivers accepted events (required)
            config: Configuration model or options dict
            sampler: Overrides the sampler built from ``config.sampling``
            socket_factory: Socket used by the realtime channel

        Raises:
            ConfigurationError: If the transport is missing or config is invalid
        """
        if transport is None:
            raise ConfigurationError("EvntalyClient requires a transport")

        if config is None:
            config = EvntalyConfig()
        elif not isinstance(config, EvntalyConfig):
            config = EvntalyConfig.from_dict(dict(config))

        self.config = config
        self.transport = transport

        if sampler is not None:
            self.sampler = sampler
        elif config.sampling is not None:
            self.sampler = SamplingManager.from_config(config.sampling)
        else:
            # No sampling configured means track everything
            self.sampler = AlwaysOnSampler()

        self._performance: Optional[PerformanceTracker] = None
        if config.track_performance:
            self.init_performance_tracking(
                auto_track=config.auto_track_performance,
                thresholds=config.performance_thresholds,
            )

        self._webhooks: Optional[WebhookManager] = None
        if config.webhook_secret:
            self._webhooks = WebhookManager(config.webhook_secret)

        self._realtime: Optional[RealtimeChannel] = None
        if config.realtime.enabled:
            self._realtime = RealtimeChannel(
                server_url=config.realtime.server_url,
                credentials=config.credentials,
                socket_factory=socket_factory,
                connect_timeout=config.realtime.connect_timeout,
            )

    # -- events and sampling --

    def track(self, event: EventLike) -> TrackResult:
        """
        Sample an event and, if accepted, submit it to the transport.

        Args:
            event: An Event or its dict form (``title`` is required)

        Returns:
            TrackResult.SENT, SAMPLED_OUT, or FAILED

        Raises:
            ValueError: If the event has no title
        """
        ev = as_event(event)

        if not self.sampler.should_sample(ev):
            logger.debug("Event %r sampled out", ev.title)
            return TrackResult.SAMPLED_OUT

        if ev.timestamp is None:
            ev = dataclasses.replace(ev, timestamp=unix_time())

        try:
            result = self.transport.submit(ev)
        except Exception as e:
            logger.error("Failed to submit event %r: %s", ev.title, e)
            return TrackResult.FAILED

        if result != SubmitResult.SUCCESS:
            logger.warning("Transport returned %s for event %r", result.value, ev.title)
            return TrackResult.FAILED
        return TrackResult.SENT

    def should_sample_event(self, event: EventLike) -> bool:
        return self.sampler.should_sample(event)

    def _sampling_manager(self) -> SamplingManager:
        if not isinstance(self.sampler, SamplingManager):
            self.sampler = SamplingManager()
        return self.sampler

    def set_sampling_rate(self, rate: float) -> EvntalyClient:
        self._sampling_manager().set_sampling_rate(rate)
        return self

    def set_priority_events(self, events: list[str]) -> EvntalyClient:
        self._sampling_manager().set_priority_events(events)
        return self

    def set_type_rates(self, type_rates: Mapping[str, float]) -> EvntalyClient:
        self._sampling_manager().set_type_rates(type_rates)
        return self

    # -- performance --

    @property
    def performance(self) -> Optional[PerformanceTracker]:
        return self._performance

    def init_performance_tracking(
        self,
        auto_track: bool = True,
        thresholds: Union[PerformanceThresholds, Mapping[str, int], None] = None,
    ) -> PerformanceTracker:
        """Create the performance tracker if it does not exist yet."""
        if self._performance is None:
            self._performance = PerformanceTracker(
                transport=self.transport,
                auto_track=auto_track,
                thresholds=thresholds,
            )
        return self._performance

    def track_performance(
        self,
        name: str,
        body: Callable[[], T],
        attributes: Optional[dict[str, Any]] = None,
    ) -> T:
        """Time ``body`` as a span, enabling performance tracking on first use."""
        tracker = self.init_performance_tracking(
            auto_track=self.config.auto_track_performance,
            thresholds=self.config.performance_thresholds,
        )
        return tracker.track_callable(name, body, attributes)

    # -- webhooks --

    @property
    def webhooks(self) -> Optional[WebhookManager]:
        return self._webhooks

    def _require_webhooks(self) -> WebhookManager:
        if self._webhooks is None:
            raise ConfigurationError(
                "Webhook manager not initialized. Set webhookSecret in options."
            )
        return self._webhooks

    def on_webhook(self, event: str, handler: WebhookHandler) -> EvntalyClient:
        self._require_webhooks().register_handler(event, handler)
        return self

    def process_webhook(self, payload: Payload, headers: Mapping[str, Any]) -> bool:
        return self._require_webhooks().process_webhook(payload, headers)

    # -- realtime --

    @property
    def realtime(self) -> Optional[RealtimeChannel]:
        return self._realtime

    def _require_realtime(self) -> RealtimeChannel:
        if self._realtime is None:
            raise ConfigurationError(
                "Realtime client not initialized. Set realtime.enabled in options."
            )
        return self._realtime

    async def connect_realtime(self) -> RealtimeChannel:
        return await self._require_realtime().connect()

    async def subscribe_to_channel(self, channel: str, handler: MessageHandler) -> bool:
        return await self._require_realtime().subscribe_to_channel(channel, handler)

    def shutdown(self) -> None:
        """Flush the transport. Call before the process exits."""
        self.transport.shutdown()
