"""WebSocket connection hub for pushing events to clients.

The hub owns every accepted WebSocket, keyed by a server-generated
connection ID, and knows how to push a named event to one connection, to
the connection a user is registered on, or to everyone.

Frame format (server → client):
    {"type": "<event name>", "data": <payload>}

Performance Notes:
    - Broadcasting uses asyncio.gather() for concurrent delivery
    - Each send is bounded by ``send_timeout`` seconds
    - A failed or timed-out send may have left a frame half written, so the
      connection is detached, its socket closed, and ``on_drop`` is called
      so the owner can take the user offline
"""
import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import WebSocket

from chatapp.presence import PresenceRegistry

logger = logging.getLogger(__name__)

DEFAULT_SEND_TIMEOUT = 5.0

# Close code for "server hit an unexpected condition".
CLOSE_INTERNAL_ERROR = 1011


class ConnectionHub:
    """Tracks live WebSocket connections and delivers events to them.

    Thread Safety:
        Designed for a single asyncio event loop. Not thread-safe.
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
    ) -> None:
        self.registry = registry
        self.send_timeout = send_timeout
        # connection_id -> WebSocket
        self.connections: Dict[str, WebSocket] = {}
        # Called with the connection ID after a failed send dropped it.
        self.on_drop: Optional[Callable[[str], Awaitable[None]]] = None

    async def attach(self, websocket: WebSocket) -> str:
        """Accept a WebSocket and assign it a connection ID."""
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        self.connections[connection_id] = websocket
        logger.debug(f"[Hub] Attached connection {connection_id}")
        return connection_id

    def detach(self, connection_id: str) -> None:
        if self.connections.pop(connection_id, None) is not None:
            logger.debug(f"[Hub] Detached connection {connection_id}")

    def is_attached(self, connection_id: str) -> bool:
        return connection_id in self.connections

    def __len__(self) -> int:
        return len(self.connections)

    async def send(self, connection_id: str, event: str, data: Any) -> bool:
        """Push one event to one connection.

        Returns:
            True if the frame was handed to the socket, False if the
            connection is unknown or the send failed.
        """
        websocket = self.connections.get(connection_id)
        if websocket is None:
            return False
        ok = await self._safe_send(websocket, {"type": event, "data": data})
        if not ok:
            await self._drop(connection_id, websocket)
        return ok

    async def emit_to_user(self, user_id: str, event: str, data: Any) -> bool:
        """Push an event to the connection a user is registered on.

        Returns False when the user is offline or the push failed; callers
        cannot tell the two apart.
        """
        connection_id = self.registry.lookup(user_id)
        if connection_id is None:
            logger.debug(f"[Hub] {event} for {user_id} dropped: user offline")
            return False
        return await self.send(connection_id, event, data)

    async def emit_to_users(self, user_ids: List[str], event: str, data: Any) -> None:
        """Push the same event to several users, once per distinct user."""
        targets = list(dict.fromkeys(user_ids))
        await asyncio.gather(
            *[self.emit_to_user(user_id, event, data) for user_id in targets]
        )

    async def broadcast(self, event: str, data: Any) -> None:
        """Push an event to every attached connection concurrently."""
        if not self.connections:
            return

        items = list(self.connections.items())
        frame = {"type": event, "data": data}
        results = await asyncio.gather(
            *[self._safe_send(ws, frame) for _, ws in items],
            return_exceptions=True,
        )

        for (connection_id, websocket), success in zip(items, results):
            if success is not True:
                await self._drop(connection_id, websocket)

    async def _drop(self, connection_id: str, websocket: WebSocket) -> None:
        """Detach a connection whose send failed, close it and report it."""
        if self.connections.pop(connection_id, None) is None:
            return
        logger.info(f"[Hub] Dropping connection {connection_id} after a failed send")
        try:
            await asyncio.wait_for(
                websocket.close(code=CLOSE_INTERNAL_ERROR), timeout=self.send_timeout
            )
        except Exception as e:
            logger.debug(f"[Hub] Close of {connection_id} failed: {e}")
        if self.on_drop is not None:
            await self.on_drop(connection_id)

    async def _safe_send(self, websocket: WebSocket, frame: dict) -> bool:
        try:
            await asyncio.wait_for(websocket.send_json(frame), timeout=self.send_timeout)
            return True
        except Exception as e:
            logger.debug(f"[Hub] Failed to send {frame.get('type')}: {e}")
            return False

