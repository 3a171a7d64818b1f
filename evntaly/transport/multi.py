"""Transport that fans events out to several transports."""

from __future__ import annotations

import logging
from typing import Sequence

from evntaly.core.event import Event
from evntaly.transport.base import BaseTransport, SubmitResult

logger = logging.getLogger(__name__)


class MultiTransport(BaseTransport):
    """
    Send every event to several transports.

    Each transport is called independently; an exception in one is logged
    and counted as a failure without affecting the others.

    The combined result is:
    - RETRY if any transport requests a retry
    - FAILURE if every transport failed
    - SUCCESS otherwise

    Example:
        ```python
        from evntaly.transport import ConsoleTransport, FileTransport, MultiTransport

        transport = MultiTransport([ConsoleTransport(), FileTransport("./events")])
        ```
    """

    def __init__(self, transports: Sequence[BaseTransport]):
        if not transports:
            raise ValueError("MultiTransport requires at least one transport")

        self.transports = list(transports)
        logger.debug("MultiTransport initialized with %d transports", len(self.transports))

    def submit(self, event: Event) -> SubmitResult:
        results = []

        for i, transport in enumerate(self.transports):
            try:
                results.append(transport.submit(event))
            except Exception as e:
                logger.error(
                    "Transport %d (%s) raised exception: %s",
                    i,
                    transport.__class__.__name__,
                    e,
                    exc_info=True,
                )
                results.append(SubmitResult.FAILURE)

        if SubmitResult.RETRY in results:
            return SubmitResult.RETRY
        if all(r == SubmitResult.FAILURE for r in results):
            return SubmitResult.FAILURE
        return SubmitResult.SUCCESS

    def shutdown(self) -> None:
        for i, transport in enumerate(self.transports):
            try:
                transport.shutdown()
            except Exception as e:
                logger.error(
                    "Transport %d (%s) shutdown error: %s",
                    i,
                    transport.__class__.__name__,
                    e,
                    exc_info=True,
                )
