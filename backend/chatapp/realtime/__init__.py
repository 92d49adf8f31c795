"""Realtime layer: WebSocket connections, presence broadcasts and typing relay."""

from .hub import ConnectionHub
from .lifecycle import (
    Connection,
    ConnectionLifecycle,
    ConnectionState,
    get_lifecycle,
    set_lifecycle,
)
from .router import router
from .typing_coordinator import TypingCoordinator

__all__ = [
    "Connection",
    "ConnectionHub",
    "ConnectionLifecycle",
    "ConnectionState",
    "TypingCoordinator",
    "get_lifecycle",
    "router",
    "set_lifecycle",
]
