"""Transports for delivering accepted events."""

from evntaly.transport.base import BaseTransport, SubmitResult
from evntaly.transport.console import ConsoleTransport
from evntaly.transport.file import FileTransport
from evntaly.transport.multi import MultiTransport

__all__ = [
    "BaseTransport",
    "SubmitResult",
    "ConsoleTransport",
    "FileTransport",
    "MultiTransport",
]
