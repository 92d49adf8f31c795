"""Connection lifecycle: binding users to connections and back.

Each WebSocket moves through CONNECTING → OPEN → CLOSED. Opening a
connection registers its user in the presence registry; closing it
unregisters the user (only if the registry still points at this
connection), clears the user's typing indicators and re-broadcasts the
online set to everyone.

A connection the hub could not write to is closed the same way, even if
its endpoint never sees the disconnect.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from fastapi import WebSocket

from chatapp.presence import PresenceRegistry

from .hub import ConnectionHub
from .typing_coordinator import TypingCoordinator

logger = logging.getLogger(__name__)

GET_ONLINE_USERS = "getOnlineUsers"


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


_ALLOWED_TRANSITIONS = {
    ConnectionState.CONNECTING: {ConnectionState.OPEN, ConnectionState.CLOSED},
    ConnectionState.OPEN: {ConnectionState.CLOSED},
    ConnectionState.CLOSED: set(),
}


@dataclass
class Connection:
    """One client's long-lived connection.

    Attributes:
        user_id: The user from the handshake, or None for anonymous clients.
        connection_id: Hub-assigned ID, set once the socket is accepted.
        state: Current lifecycle state.
    """
    user_id: Optional[str]
    connection_id: Optional[str] = None
    state: ConnectionState = field(default=ConnectionState.CONNECTING)

    def transition(self, new_state: ConnectionState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal connection transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state


class ConnectionLifecycle:
    """Opens and closes connections against the registry and hub."""

    def __init__(
        self,
        hub: ConnectionHub,
        registry: PresenceRegistry,
        typing: TypingCoordinator,
    ) -> None:
        self.hub = hub
        self.registry = registry
        self.typing = typing
        # connection_id -> Connection, for every connection not yet closed
        self._open: Dict[str, Connection] = {}
        hub.on_drop = self._on_drop

    async def open(self, websocket: WebSocket, user_id: Optional[str]) -> Connection:
        """Accept the socket, register the user and announce the online set."""
        connection = Connection(user_id=user_id or None)
        connection.connection_id = await self.hub.attach(websocket)
        self._open[connection.connection_id] = connection
        if connection.user_id:
            self.registry.register(connection.user_id, connection.connection_id)
        else:
            logger.info(f"[Lifecycle] Anonymous connection {connection.connection_id}")
        connection.transition(ConnectionState.OPEN)

        await self.broadcast_online_users()
        return connection

    async def close(self, connection: Connection) -> None:
        """Tear a connection down. Safe to call more than once."""
        if connection.state == ConnectionState.CLOSED:
            return
        connection.transition(ConnectionState.CLOSED)

        if connection.connection_id:
            self._open.pop(connection.connection_id, None)
            self.hub.detach(connection.connection_id)

        if connection.user_id:
            removed = self.registry.unregister(connection.user_id, connection.connection_id)
            if removed:
                await self.typing.clear_sender(connection.user_id)
            logger.info(
                f"[Lifecycle] User {connection.user_id} disconnected "
                f"(connection {connection.connection_id}, unregistered={removed})"
            )

        await self.broadcast_online_users()

    async def broadcast_online_users(self) -> None:
        await self.hub.broadcast(GET_ONLINE_USERS, sorted(self.registry.snapshot()))

    async def _on_drop(self, connection_id: str) -> None:
        # The hub closed a socket it could not write to; the endpoint may
        # still be blocked in receive, so take the user offline here.
        connection = self._open.get(connection_id)
        if connection is not None:
            logger.warning(
                f"[Lifecycle] Connection {connection_id} of {connection.user_id} "
                f"dropped after a failed send"
            )
            await self.close(connection)


_lifecycle: Optional[ConnectionLifecycle] = None


def get_lifecycle() -> ConnectionLifecycle:
    """Get the global lifecycle manager (set during application startup)."""
    if _lifecycle is None:
        raise RuntimeError("Connection lifecycle is not initialised")
    return _lifecycle


def set_lifecycle(lifecycle: Optional[ConnectionLifecycle]) -> None:
    global _lifecycle
    _lifecycle = lifecycle
