"""File transport that appends events to JSONL files."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from evntaly.core.event import Event
from evntaly.transport.base import BaseTransport, SubmitResult

logger = logging.getLogger(__name__)


class FileTransport(BaseTransport):
    """
    Append events to a daily JSONL file, one JSON object per line.

    File naming: events-{date}.jsonl, e.g. events-2025-01-26.jsonl.
    Writes are serialized with a lock so one transport can be shared
    between threads.

    Example:
        ```python
        from evntaly import EvntalyClient
        from evntaly.transport import FileTransport

        client = EvntalyClient(transport=FileTransport(directory="./events"))
        client.track({"title": "Signup", "type": "user"})
        ```
    """

    def __init__(self, directory: str | Path = "./events"):
        self.directory = Path(directory)
        self._lock = threading.Lock()
        self.directory.mkdir(parents=True, exist_ok=True)

    @property
    def current_file(self) -> Path:
        date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        return self.directory / f"events-{date_str}.jsonl"

    def submit(self, event: Event) -> SubmitResult:
        try:
            line = json.dumps(event.to_dict(), default=str)
        except (TypeError, ValueError) as e:
            logger.error("Failed to serialize event %r: %s", event.title, e)
            return SubmitResult.FAILURE

        try:
            with self._lock:
                with open(self.current_file, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except OSError as e:
            logger.error("Failed to write event to %s: %s", self.current_file, e)
            return SubmitResult.FAILURE

        return SubmitResult.SUCCESS

    def read_events(self) -> Iterator[Event]:
        """Read back every stored event, oldest file first."""
        for file_path in sorted(self.directory.glob("events-*.jsonl")):
            with open(file_path, encoding="utf-8") as f:
                for line in f:
                    if not line.strip():
                        continue
                    try:
                        yield Event.from_dict(json.loads(line))
                    except (json.JSONDecodeError, ValueError):
                        logger.debug("Skipping unreadable line in %s", file_path)
                        continue

    def shutdown(self) -> None:
        pass
