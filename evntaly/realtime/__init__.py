"""Realtime push channel."""

from evntaly.realtime.channel import (
    ConnectionHandler,
    ConnectionState,
    MessageHandler,
    RealtimeChannel,
)
from evntaly.realtime.message import RealtimeMessage
from evntaly.realtime.socket import AiohttpSocket, BaseSocket

__all__ = [
    "RealtimeChannel",
    "ConnectionState",
    "MessageHandler",
    "ConnectionHandler",
    "RealtimeMessage",
    "BaseSocket",
    "AiohttpSocket",
]
