"""Event record submitted to the Evntaly service."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from evntaly.core.clock import unix_time


@dataclass
class Event:
    """A single tracked event.

    Events are identified either by an explicit ``id`` or, when none is
    given, by a fingerprint derived from the title, timestamp and the
    ``user_id`` entry of ``data``. Sampling decisions are keyed by this
    identity so the same event always gets the same decision.
    """

    title: str
    type: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[int] = None
    id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.title:
            raise ValueError("Event data must contain at least a title")

    def fingerprint(self) -> str:
        """Return the stable identity used for sampling decisions."""
        return compute_fingerprint(self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        """Convert event to the wire representation, omitting empty fields."""
        result: dict[str, Any] = {"title": self.title}
        if self.id is not None:
            result["id"] = self.id
        if self.type is not None:
            result["type"] = self.type
        if self.description is not None:
            result["description"] = self.description
        if self.tags:
            result["tags"] = list(self.tags)
        if self.data:
            result["data"] = self.data
        if self.timestamp is not None:
            result["timestamp"] = self.timestamp
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Event:
        """Create an event from its wire representation.

        Raises:
            ValueError: If ``title`` is missing or empty
        """
        title = data.get("title")
        if not title:
            raise ValueError("Event data must contain at least a title")

        tags = data.get("tags") or []
        payload = data.get("data") or {}
        return cls(
            title=str(title),
            type=data.get("type"),
            description=data.get("description"),
            tags=[str(tag) for tag in tags] if isinstance(tags, (list, tuple, set)) else [],
            data=dict(payload) if isinstance(payload, Mapping) else {},
            timestamp=data.get("timestamp"),
            id=str(data["id"]) if data.get("id") is not None else None,
        )


def compute_fingerprint(event: Mapping[str, Any]) -> str:
    """Compute the identity of an event given in wire form.

    Uses the explicit ``id`` when present, otherwise an MD5 over the
    title, the timestamp (now, when absent) and ``data.user_id``.
    """
    if event.get("id") is not None:
        return str(event["id"])

    timestamp = event.get("timestamp")
    identity: dict[str, Any] = {
        "title": event.get("title") or "",
        "timestamp": timestamp if timestamp is not None else unix_time(),
    }
    data = event.get("data")
    if isinstance(data, Mapping) and "user_id" in data:
        identity["user_id"] = data["user_id"]

    encoded = json.dumps(identity, separators=(",", ":"), sort_keys=True, default=str)
    return hashlib.md5(encoded.encode()).hexdigest()


def as_event(event: Event | Mapping[str, Any]) -> Event:
    """Accept either an ``Event`` or its dict form."""
    if isinstance(event, Event):
        return event
    return Event.from_dict(event)
