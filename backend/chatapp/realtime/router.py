"""Realtime WebSocket endpoint.

WebSocket /ws?userId=<id>

Protocol (client → server), one JSON object per frame:
    - {"type": "typing", "data": {"recipientId": "..."}}
    - {"type": "stopTyping", "data": {"recipientId": "..."}}
    The flat form {"type": "typing", "recipientId": "..."} is also accepted.

Events (server → client), as {"type": <event>, "data": <payload>}:
    - getOnlineUsers: list of online user IDs (on every connect/disconnect)
    - userTyping / userStoppedTyping: {"senderId": "..."}
    - newMessage, messagesRead, messageReaction, messageEdited (pushed by
      the message REST endpoints)
    - error: {"error": "..."} for frames the server cannot handle
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from .lifecycle import get_lifecycle

logger = logging.getLogger(__name__)

router = APIRouter()


async def _send_error(websocket: WebSocket, error: str) -> None:
    await websocket.send_json({"type": "error", "data": {"error": error}})


def _recipient_of(frame: dict) -> Optional[str]:
    payload = frame.get("data")
    if isinstance(payload, dict) and "recipientId" in payload:
        return payload["recipientId"]
    return frame.get("recipientId")


@router.websocket("/ws")
async def realtime_endpoint(
    websocket: WebSocket,
    userId: Optional[str] = Query(None, description="Logged-in user ID"),
) -> None:
    """Hold one client's realtime connection open until it goes away."""
    lifecycle = get_lifecycle()
    connection = await lifecycle.open(websocket, userId)
    logger.info(
        f"[WS] Connection {connection.connection_id} open for user={connection.user_id}"
    )

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await _send_error(websocket, "Invalid frame: expected JSON")
                continue
            if not isinstance(data, dict):
                await _send_error(websocket, "Invalid frame: expected JSON object")
                continue

            event = data.get("type")
            logger.debug("[WS] %s received: type=%s", connection.connection_id, event)

            if event not in ("typing", "stopTyping"):
                await _send_error(websocket, f"Unknown event type: {event}")
                continue

            if not connection.user_id:
                await _send_error(websocket, "Anonymous connections cannot send typing events")
                continue

            recipient_id = _recipient_of(data)
            if not recipient_id or not isinstance(recipient_id, str):
                await _send_error(websocket, "recipientId is required")
                continue

            if event == "typing":
                await lifecycle.typing.notify_typing(connection.user_id, recipient_id)
            else:
                await lifecycle.typing.notify_stop_typing(connection.user_id, recipient_id)

    except WebSocketDisconnect:
        logger.info(f"[WS] Connection {connection.connection_id} disconnected")
    finally:
        await lifecycle.close(connection)
