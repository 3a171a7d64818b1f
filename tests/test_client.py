"""Tests for EvntalyClient."""

from __future__ import annotations

import json

import pytest

from evntaly.client import EvntalyClient, TrackResult
from evntaly.config import EvntalyConfig
from evntaly.core.event import Event
from evntaly.core.sampler import AlwaysOffSampler, AlwaysOnSampler, SamplingManager
from evntaly.core.span import PerformanceCategory
from evntaly.errors import ConfigurationError
from evntaly.realtime import BaseSocket, ConnectionState
from evntaly.transport.base import BaseTransport, SubmitResult
from evntaly.webhook import SIGNATURE_HEADER, sign


class MockTransport(BaseTransport):
    """Mock transport for testing."""

    def __init__(self, result: SubmitResult = SubmitResult.SUCCESS):
        self.events: list[Event] = []
        self.result = result
        self.shutdown_called = False

    def submit(self, event: Event) -> SubmitResult:
        self.events.append(event)
        return self.result

    def shutdown(self) -> None:
        self.shutdown_called = True


class RecordingSocket(BaseSocket):
    def __init__(self) -> None:
        super().__init__()
        self.sent = []

    async def connect(self, url: str, timeout: float) -> None:
        self.url = url

    async def send(self, text: str) -> None:
        self.sent.append(json.loads(text))

    async def close(self) -> None:
        self._emit("close", 1000, None)


@pytest.fixture
def transport():
    return MockTransport()


class TestConstruction:
    """Tests for client construction."""

    def test_requires_transport(self) -> None:
        """Test that a client cannot be built without a transport."""
        with pytest.raises(ConfigurationError):
            EvntalyClient()

    def test_defaults(self, transport) -> None:
        """Test that optional subsystems stay off by default."""
        client = EvntalyClient(transport=transport)
        assert isinstance(client.config, EvntalyConfig)
        assert isinstance(client.sampler, AlwaysOnSampler)
        assert client.performance is None
        assert client.webhooks is None
        assert client.realtime is None

    def test_options_dict(self, transport) -> None:
        """Test that a camelCase options dict configures every subsystem."""
        client = EvntalyClient(
            transport=transport,
            config={
                "sampling": {"rate": 0.5, "priorityEvents": ["vip"]},
                "webhookSecret": "whsec",
                "trackPerformance": True,
                "realtime": {"enabled": True, "serverUrl": "ws://local"},
            },
        )
        assert isinstance(client.sampler, SamplingManager)
        assert client.sampler.rate == 0.5
        assert client.performance is not None
        assert client.webhooks is not None
        assert client.realtime.server_url == "ws://local"

    def test_invalid_options(self, transport) -> None:
        """Test that invalid options raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            EvntalyClient(transport=transport, config={"realtime": {"connectTimeout": -1}})

    def test_explicit_sampler_wins(self, transport) -> None:
        """Test that an explicit sampler overrides the sampling config."""
        sampler = AlwaysOffSampler()
        client = EvntalyClient(transport=transport, config={"sampling": {"rate": 1}}, sampler=sampler)
        assert client.sampler is sampler


class TestTrack:
    """Tests for track()."""

    def test_sent(self, transport) -> None:
        """Test that a sampled event is stamped and handed to the transport."""
        client = EvntalyClient(transport=transport)
        result = client.track({"title": "Signup", "type": "user"})

        assert result is TrackResult.SENT
        assert transport.events[0].title == "Signup"
        assert transport.events[0].timestamp is not None

    def test_existing_timestamp_kept(self, transport) -> None:
        """Test that a caller-supplied timestamp is not overwritten."""
        EvntalyClient(transport=transport).track(Event(title="a", timestamp=42))
        assert transport.events[0].timestamp == 42

    def test_sampled_out(self, transport) -> None:
        """Test that a dropped event is truthy but never reaches the transport."""
        client = EvntalyClient(transport=transport, sampler=AlwaysOffSampler())
        result = client.track({"title": "a"})
        assert result is TrackResult.SAMPLED_OUT
        assert bool(result) is True
        assert transport.events == []

    def test_transport_failure(self) -> None:
        """Test that a transport failure is reported as FAILED."""
        client = EvntalyClient(transport=MockTransport(SubmitResult.FAILURE))
        result = client.track({"title": "a"})
        assert result is TrackResult.FAILED
        assert not result

    def test_missing_title(self, transport) -> None:
        """Test that an event without a title is rejected."""
        with pytest.raises(ValueError):
            EvntalyClient(transport=transport).track({"type": "user"})


class TestSampling:
    def test_should_sample_event(self, transport) -> None:
        """Test that should_sample_event delegates to the configured sampler."""
        client = EvntalyClient(
            transport=transport, config={"sampling": {"rate": 0, "priorityEvents": ["vip"]}}
        )
        assert client.should_sample_event({"title": "vip", "timestamp": 1}) is True
        assert client.should_sample_event({"title": "other", "timestamp": 1}) is False

    def test_mutators_create_sampling_manager(self, transport) -> None:
        """Test that sampling mutators swap in a SamplingManager."""
        client = EvntalyClient(transport=transport)
        assert client.set_sampling_rate(0.2) is client
        client.set_priority_events(["vip"]).set_type_rates({"click": 0.5})

        assert isinstance(client.sampler, SamplingManager)
        assert client.sampler.rate == 0.2
        assert client.sampler.priority_events == frozenset({"vip"})
        assert client.sampler.type_rates == {"click": 0.5}


class TestPerformance:
    def test_track_performance_enables_tracker(self, transport) -> None:
        """Test that track_performance creates a tracker on first use."""
        client = EvntalyClient(transport=transport)
        assert client.track_performance("op", lambda: "done") == "done"
        assert client.performance is not None
        assert client.performance.get_all_spans()[0].name == "op"

    def test_configured_thresholds(self, transport) -> None:
        """Test that configured thresholds drive categorization and reporting."""
        client = EvntalyClient(
            transport=transport,
            config={"trackPerformance": True, "performanceThresholds": {"slow": 0, "warning": 0, "acceptable": 0}},
        )
        client.track_performance("op", lambda: None)

        assert client.performance.get_all_spans()[0].category is PerformanceCategory.SLOW
        assert transport.events[0].title == "Performance: op"

    def test_auto_track_disabled(self, transport) -> None:
        """Test that slow spans are not reported when autoTrackPerformance is off."""
        client = EvntalyClient(
            transport=transport,
            config={
                "trackPerformance": True,
                "autoTrackPerformance": False,
                "performanceThresholds": {"slow": 0, "warning": 0, "acceptable": 0},
            },
        )
        client.track_performance("op", lambda: None)
        assert transport.events == []


class TestWebhooks:
    def test_not_configured(self, transport) -> None:
        """Test that webhook calls fail without a webhookSecret."""
        client = EvntalyClient(transport=transport)
        with pytest.raises(ConfigurationError, match="webhookSecret"):
            client.on_webhook("a", lambda d, t: None)
        with pytest.raises(ConfigurationError):
            client.process_webhook(b"{}", {})

    def test_process_webhook(self, transport) -> None:
        """Test that signed deliveries reach registered handlers."""
        client = EvntalyClient(transport=transport, config={"webhookSecret": "whsec"})
        received = []
        client.on_webhook("event.created", lambda data, t: received.append(t))

        payload = b'{"event": "event.created"}'
        assert client.process_webhook(payload, {SIGNATURE_HEADER: sign("whsec", payload)})
        assert received == ["event.created"]
        assert not client.process_webhook(payload, {SIGNATURE_HEADER: sign("other", payload)})


class TestRealtime:
    @pytest.mark.asyncio
    async def test_not_configured(self, transport) -> None:
        """Test that realtime calls fail unless realtime is enabled."""
        client = EvntalyClient(transport=transport)
        with pytest.raises(ConfigurationError, match="realtime.enabled"):
            await client.connect_realtime()
        with pytest.raises(ConfigurationError):
            await client.subscribe_to_channel("c", lambda *a: None)

    @pytest.mark.asyncio
    async def test_connect_and_subscribe(self, transport) -> None:
        """Test that the client authenticates and subscribes over its socket."""
        sockets = []

        def factory():
            sockets.append(RecordingSocket())
            return sockets[-1]

        client = EvntalyClient(
            transport=transport,
            config={
                "developerSecret": "dev",
                "projectToken": "tok",
                "realtime": {"enabled": True, "serverUrl": "ws://local"},
            },
            socket_factory=factory,
        )

        channel = await client.connect_realtime()
        assert channel.state is ConnectionState.CONNECTED
        assert await client.subscribe_to_channel("signups", lambda *a: None)

        sent = sockets[0].sent
        assert sent[0]["type"] == "auth"
        assert sent[0]["data"] == {"developerSecret": "dev", "projectToken": "tok"}
        assert sent[1]["type"] == "subscribe"
        assert sent[1]["data"] == {"channel": "signups"}


def test_shutdown(transport) -> None:
    """Test that shutdown() shuts down the transport."""
    client = EvntalyClient(transport=transport)
    client.shutdown()
    assert transport.shutdown_called
