"""Configuration models for the Evntaly SDK.

Options can be given in snake_case or in the camelCase spelling used by the
Evntaly service documentation (``webhookSecret``, ``sampling.typeRates``,
``performanceThresholds.slow`` ...). Values are validated once, when the
configuration is built, so that misconfiguration fails fast.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from evntaly.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_REALTIME_URL = "wss://realtime.evntaly.com"
CONFIG_FILE = ".evntaly.yaml"

_TRUTHY = ("true", "1", "yes")


def clamp_rate(rate: float) -> float:
    """Clamp a sampling rate into [0.0, 1.0]."""
    return max(0.0, min(1.0, float(rate)))


class SamplingConfig(BaseModel):
    """Sampling options: global rate, priority matchers, per-type rates."""

    model_config = ConfigDict(populate_by_name=True)

    rate: float = Field(1.0, description="Default sampling rate, clamped to [0, 1]")
    priority_events: list[str] = Field(
        default_factory=list,
        alias="priorityEvents",
        description="Titles, types or tags that always bypass sampling",
    )
    type_rates: dict[str, float] = Field(
        default_factory=dict,
        alias="typeRates",
        description="Per-event-type sampling rates",
    )

    @field_validator("rate")
    @classmethod
    def validate_rate(cls, v: float) -> float:
        return clamp_rate(v)

    @field_validator("type_rates")
    @classmethod
    def validate_type_rates(cls, v: dict[str, float]) -> dict[str, float]:
        return {event_type: clamp_rate(rate) for event_type, rate in v.items()}


class PerformanceThresholds(BaseModel):
    """Duration thresholds (milliseconds) used to classify spans."""

    model_config = ConfigDict(populate_by_name=True)

    slow: int = Field(1000, ge=0)
    warning: int = Field(500, ge=0)
    acceptable: int = Field(100, ge=0)

    @model_validator(mode="after")
    def validate_order(self) -> PerformanceThresholds:
        """Thresholds are checked highest first, so they must be descending."""
        if not self.slow >= self.warning >= self.acceptable:
            raise ValueError(
                "performance thresholds must satisfy slow >= warning >= acceptable, "
                f"got slow={self.slow}, warning={self.warning}, acceptable={self.acceptable}"
            )
        return self


class RealtimeConfig(BaseModel):
    """Options for the realtime push channel."""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    server_url: str = Field(DEFAULT_REALTIME_URL, alias="serverUrl")
    connect_timeout: float = Field(10.0, gt=0, alias="connectTimeout")


class EvntalyConfig(BaseModel):
    """Top-level SDK configuration."""

    model_config = ConfigDict(populate_by_name=True)

    developer_secret: Optional[str] = Field(None, alias="developerSecret")
    project_token: Optional[str] = Field(None, alias="projectToken")
    sampling: Optional[SamplingConfig] = None
    webhook_secret: Optional[str] = Field(None, alias="webhookSecret")
    track_performance: bool = Field(False, alias="trackPerformance")
    auto_track_performance: bool = Field(True, alias="autoTrackPerformance")
    performance_thresholds: PerformanceThresholds = Field(
        default_factory=PerformanceThresholds, alias="performanceThresholds"
    )
    realtime: RealtimeConfig = Field(default_factory=RealtimeConfig)

    @property
    def credentials(self) -> dict[str, Optional[str]]:
        """Credentials sent in the realtime ``auth`` message."""
        return {
            "developerSecret": self.developer_secret,
            "projectToken": self.project_token,
        }

    @classmethod
    def from_dict(cls, options: dict[str, Any]) -> EvntalyConfig:
        """Build a configuration from a (possibly camelCase) options dict.

        Raises:
            ConfigurationError: If any option is invalid
        """
        try:
            return cls.model_validate(options)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid Evntaly configuration: {e}") from e

    @classmethod
    def from_env(cls) -> EvntalyConfig:
        """Build a configuration from ``EVNTALY_*`` environment variables."""
        options: dict[str, Any] = {}

        if os.getenv("EVNTALY_DEVELOPER_SECRET"):
            options["developer_secret"] = os.getenv("EVNTALY_DEVELOPER_SECRET")
        if os.getenv("EVNTALY_PROJECT_TOKEN"):
            options["project_token"] = os.getenv("EVNTALY_PROJECT_TOKEN")
        if os.getenv("EVNTALY_WEBHOOK_SECRET"):
            options["webhook_secret"] = os.getenv("EVNTALY_WEBHOOK_SECRET")

        sample_rate = os.getenv("EVNTALY_SAMPLE_RATE")
        priority = os.getenv("EVNTALY_PRIORITY_EVENTS")
        if sample_rate is not None or priority:
            sampling: dict[str, Any] = {}
            if sample_rate is not None:
                try:
                    sampling["rate"] = float(sample_rate)
                except ValueError as e:
                    raise ConfigurationError(
                        f"EVNTALY_SAMPLE_RATE must be a number, got {sample_rate!r}"
                    ) from e
            if priority:
                sampling["priority_events"] = [
                    item.strip() for item in priority.split(",") if item.strip()
                ]
            options["sampling"] = sampling

        if os.getenv("EVNTALY_TRACK_PERFORMANCE"):
            options["track_performance"] = (
                os.getenv("EVNTALY_TRACK_PERFORMANCE", "").lower() in _TRUTHY
            )

        realtime: dict[str, Any] = {}
        if os.getenv("EVNTALY_REALTIME_ENABLED"):
            realtime["enabled"] = os.getenv("EVNTALY_REALTIME_ENABLED", "").lower() in _TRUTHY
        if os.getenv("EVNTALY_REALTIME_URL"):
            realtime["server_url"] = os.getenv("EVNTALY_REALTIME_URL")
        if realtime:
            options["realtime"] = realtime

        return cls.from_dict(options)

    @classmethod
    def from_file(cls, path: str | Path = CONFIG_FILE) -> EvntalyConfig:
        """Load configuration from a YAML file.

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid
        """
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping at top level")

        logger.debug("Loaded configuration from %s", config_path)
        return cls.from_dict(data)
