"""Real-time notification bus and per-connection session handling."""

from .events import EventType, Message
from .bus import Connection, ConnectionRegistry, NotificationBus
from .session import ConnectionSession, LivenessMonitor

__all__ = [
    "EventType",
    "Message",
    "Connection",
    "ConnectionRegistry",
    "NotificationBus",
    "ConnectionSession",
    "LivenessMonitor",
]
