"""Evntaly - event tracking SDK."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional, Union

from evntaly._version import __version__
from evntaly.client import EvntalyClient, TrackResult
from evntaly.config import (
    CONFIG_FILE,
    EvntalyConfig,
    PerformanceThresholds,
    RealtimeConfig,
    SamplingConfig,
)
from evntaly.core.event import Event
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
from evntaly.errors import (
    ConfigurationError,
    EvntalyError,
    NotConnectedError,
    PreconditionError,
    RealtimeConnectionError,
    ReconnectCancelled,
)
from evntaly.realtime import ConnectionState, RealtimeChannel, RealtimeMessage
from evntaly.registry import HandlerRegistry
from evntaly.transport import (
    BaseTransport,
    ConsoleTransport,
    FileTransport,
    MultiTransport,
    SubmitResult,
)
from evntaly.webhook import WebhookManager, WebhookVerifier, sign

__all__ = [
    # Version
    "__version__",
    # Main API
    "init",
    "EvntalyClient",
    "TrackResult",
    "Event",
    # Configuration
    "EvntalyConfig",
    "SamplingConfig",
    "PerformanceThresholds",
    "RealtimeConfig",
    # Sampling
    "BaseSampler",
    "AlwaysOnSampler",
    "AlwaysOffSampler",
    "SamplingManager",
    "DecisionCache",
    # Performance
    "PerformanceTracker",
    "PerformanceCategory",
    "Span",
    "SpanNotFound",
    "TrendStats",
    "TrendStatus",
    "InsufficientData",
    # Webhooks
    "WebhookManager",
    "WebhookVerifier",
    "sign",
    # Realtime
    "RealtimeChannel",
    "RealtimeMessage",
    "ConnectionState",
    # Transports
    "BaseTransport",
    "ConsoleTransport",
    "FileTransport",
    "MultiTransport",
    "SubmitResult",
    # Misc
    "HandlerRegistry",
    # Errors
    "EvntalyError",
    "ConfigurationError",
    "PreconditionError",
    "NotConnectedError",
    "RealtimeConnectionError",
    "ReconnectCancelled",
]


def init(
    transport: Union[str, BaseTransport, None] = None,
    config: Union[EvntalyConfig, dict[str, Any], str, Path, None] = None,
    debug: Optional[bool] = None,
    **kwargs: Any,
) -> EvntalyClient:
    """
    Create an Evntaly client with one line of code.

    Configuration is resolved in this order:
    1. ``config`` if given (a model, an options dict, or a YAML file path)
    2. ``.evntaly.yaml`` in the working directory, if present
    3. ``EVNTALY_*`` environment variables

    Args:
        transport: Where accepted events go:
            - "console": Pretty-print to console (default)
            - "file": Append to JSONL files
            - BaseTransport instance: Custom transport
            - Default: $EVNTALY_TRANSPORT or "console"
        config: Configuration source (see above)
        debug: Enable debug logging (default: $EVNTALY_DEBUG)
        **kwargs: Passed to the transport constructor
            For ConsoleTransport: verbosity, color, show_timestamps
            For FileTransport: directory

    Returns:
        A configured EvntalyClient. The client is not stored globally; keep
        the reference and pass it where it is needed.

    Environment Variables:
        EVNTALY_TRANSPORT: Default transport ("console" or "file")
        EVNTALY_EVENT_DIR: Directory for the file transport (default: ./events)
        EVNTALY_DEBUG: Enable debug logging ("true", "1" or "yes")
        EVNTALY_DEVELOPER_SECRET, EVNTALY_PROJECT_TOKEN: Credentials
        EVNTALY_SAMPLE_RATE, EVNTALY_PRIORITY_EVENTS: Sampling
        EVNTALY_WEBHOOK_SECRET: Shared webhook secret
        EVNTALY_TRACK_PERFORMANCE: Enable the performance tracker
        EVNTALY_REALTIME_ENABLED, EVNTALY_REALTIME_URL: Realtime channel

    Example:
        ```python
        import evntaly

        client = evntaly.init(
            transport="file",
            directory="./events",
            config={"sampling": {"rate": 0.5}, "webhookSecret": "whsec_..."},
        )
        client.track({"title": "Signup", "type": "user"})
        ```
    """
    if debug is None:
        debug = os.getenv("EVNTALY_DEBUG", "false").lower() in ("true", "1", "yes")

    if debug:
        logging.basicConfig(
            level=logging.DEBUG, format="%(asctime)s - %(name)s - %(message)s"
        )
        logging.getLogger("evntaly").setLevel(logging.DEBUG)

    if isinstance(config, (str, Path)):
        resolved = EvntalyConfig.from_file(config)
    elif isinstance(config, dict):
        resolved = EvntalyConfig.from_dict(config)
    elif isinstance(config, EvntalyConfig):
        resolved = config
    elif Path(CONFIG_FILE).exists():
        resolved = EvntalyConfig.from_file(CONFIG_FILE)
    else:
        resolved = EvntalyConfig.from_env()

    transport_name = transport or os.getenv("EVNTALY_TRANSPORT", "console")

    if isinstance(transport_name, BaseTransport):
        transport_instance = transport_name
    elif transport_name == "console":
        transport_instance = ConsoleTransport(**kwargs)
    elif transport_name == "file":
        directory = kwargs.get("directory", os.getenv("EVNTALY_EVENT_DIR", "./events"))
        transport_instance = FileTransport(directory=directory)
    else:
        raise ConfigurationError(
            f"Unknown transport: {transport_name}. "
            f"Use 'console', 'file', or provide a BaseTransport instance."
        )

    client = EvntalyClient(transport=transport_instance, config=resolved)
    logging.getLogger("evntaly").debug(
        "Evntaly client initialized with %s", transport_instance.__class__.__name__
    )
    return client
