"""Console transport for pretty-printing events during development."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from typing import IO, Optional

from rich.console import Console
from rich.markup import escape

from evntaly.core.event import Event
from evntaly.transport.base import BaseTransport, SubmitResult

# Tags that get a highlight colour when printed
_TAG_STYLES = {
    "slow": "red",
    "warning": "yellow",
    "acceptable": "cyan",
    "good": "green",
    "performance": "magenta",
}


class ConsoleTransport(BaseTransport):
    """
    Print events to the console instead of sending them anywhere.

    Example:
        ```python
        from evntaly import init

        client = init(transport="console", verbosity="verbose")
        client.track({"title": "Signup", "type": "user", "tags": ["web"]})
        # 12:30:45 Signup [user] #web
        #   description: ...
        ```
    """

    def __init__(
        self,
        verbosity: str = "normal",
        color: bool = True,
        show_timestamps: bool = True,
        file: Optional[IO[str]] = None,
    ):
        """
        Initialize console transport.

        Args:
            verbosity: Output verbosity level:
                - "minimal": title only
                - "normal": + type, tags and description
                - "verbose": + every data field
            color: Enable colored output
            show_timestamps: Show the event timestamp in output
            file: Stream to write to (default: stdout)
        """
        if verbosity not in ("minimal", "normal", "verbose"):
            raise ValueError(
                f"Invalid verbosity: {verbosity}. "
                "Must be 'minimal', 'normal', or 'verbose'"
            )

        self.verbosity = verbosity
        self.color = color
        self.show_timestamps = show_timestamps
        self.console = Console(
            file=file or sys.stdout, no_color=not color, highlight=False
        )

    def submit(self, event: Event) -> SubmitResult:
        """Print the event. Console output never fails."""
        parts = []

        if self.show_timestamps:
            ts = (
                datetime.fromtimestamp(event.timestamp, tz=timezone.utc)
                if event.timestamp is not None
                else datetime.now(timezone.utc)
            )
            parts.append(f"[dim]{ts.strftime('%H:%M:%S')}[/dim]")

        parts.append(f"[bold]{escape(event.title)}[/bold]")

        if self.verbosity != "minimal":
            if event.type:
                parts.append(f"[blue]\\[{escape(event.type)}][/blue]")
            for tag in event.tags:
                style = _TAG_STYLES.get(tag, "white")
                parts.append(f"[{style}]#{escape(tag)}[/{style}]")

        self.console.print(" ".join(parts))

        if self.verbosity != "minimal" and event.description:
            self.console.print(f"  description: {escape(event.description)}")

        if self.verbosity == "verbose":
            for key, value in event.data.items():
                self.console.print(f"  {escape(str(key))}: {escape(repr(value))}")

        return SubmitResult.SUCCESS

    def shutdown(self) -> None:
        pass
