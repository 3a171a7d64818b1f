"""Wire format of realtime channel frames."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError, field_validator

from evntaly.core.clock import unix_time

logger = logging.getLogger(__name__)

# Client -> server message types
AUTH = "auth"
SUBSCRIBE = "subscribe"
UNSUBSCRIBE = "unsubscribe"


class RealtimeMessage(BaseModel):
    """
    One JSON frame: ``{"type": ..., "data": ..., "timestamp": ...}``.

    Unknown top-level fields sent by the server are kept so handlers can
    see the full envelope.
    """

    model_config = ConfigDict(extra="allow")

    type: StrictStr
    data: Any = Field(default_factory=dict)
    timestamp: Optional[Union[int, float]] = None

    @field_validator("data", mode="before")
    @classmethod
    def default_data(cls, v: Any) -> Any:
        return {} if v is None else v

    @classmethod
    def create(cls, type: str, data: Optional[dict[str, Any]] = None) -> RealtimeMessage:
        """Build an outbound message stamped with the current time."""
        return cls(type=type, data=data if data is not None else {}, timestamp=unix_time())

    def encode(self) -> str:
        return json.dumps(self.model_dump(), default=str)

    @classmethod
    def decode(cls, raw: Union[str, bytes]) -> Optional[RealtimeMessage]:
        """
        Parse an inbound frame.

        Returns:
            The message, or None if the frame is not a JSON object with a
            string ``type``
        """
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.debug("Dropping undecodable realtime frame")
            return None

        if not isinstance(payload, dict):
            logger.debug("Dropping non-object realtime frame")
            return None

        try:
            return cls.model_validate(payload)
        except ValidationError:
            logger.debug("Dropping realtime frame without a type")
            return None
