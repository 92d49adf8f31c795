"""Direct message REST endpoints.

Endpoints:
    POST /api/message/send/{recipientId}: Send a message (201)
    GET  /api/message/get/{peerId}: Conversation history, marks it read
    PUT  /api/message/read/{peerId}: Mark the peer's messages read
    POST /api/message/reaction/{messageId}: Toggle an emoji reaction
    PUT  /api/message/edit/{messageId}: Edit one of your own messages

Every endpoint needs the caller's user ID (see chatapp.auth). Realtime
side effects (newMessage, messagesRead, messageReaction, messageEdited)
are pushed to whichever participants are online.

Errors:
    404 {"error": "Message not found"}
    403 {"error": "Not authorized to ..."}
    500 {"error": "Internal server error"}
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from chatapp.auth import get_current_user_id

from .exceptions import MessageError, MessageNotFoundError, NotAuthorizedError
from .schemas import EditMessageRequest, ReactionRequest, SendMessageRequest
from .service import MessageService, get_message_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/message", tags=["messages"])


def _error_response(action: str, exc: MessageError) -> JSONResponse:
    if isinstance(exc, MessageNotFoundError):
        return JSONResponse({"error": "Message not found"}, status_code=404)
    if isinstance(exc, NotAuthorizedError):
        return JSONResponse({"error": str(exc)}, status_code=403)
    logger.error(f"[Messages] Error in {action}: {exc!r}", exc_info=exc)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.post("/send/{recipientId}", status_code=201)
async def send_message(
    recipientId: str,
    body: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
) -> JSONResponse:
    """Send a message to another user.

    Args:
        recipientId: The receiving user.
        body: Message text plus optional media metadata and replyTo.

    Returns:
        The stored message (201 Created). Its status is 'delivered' if the
        recipient was online, 'sent' otherwise.
    """
    try:
        message = await service.send(user_id, recipientId, body)
    except MessageError as exc:
        return _error_response("sendMessage", exc)
    return JSONResponse(message.model_dump(mode="json"), status_code=201)


@router.get("/get/{peerId}")
async def get_messages(
    peerId: str,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
) -> JSONResponse:
    """Get the conversation with a peer in send order.

    Side effect: the peer's unread messages to the caller become 'read'.

    Returns:
        JSON array of messages; empty if the two have never talked.
    """
    try:
        messages = await service.fetch(user_id, peerId)
    except MessageError as exc:
        return _error_response("getMessage", exc)
    return JSONResponse([m.model_dump(mode="json") for m in messages])


@router.put("/read/{peerId}")
async def mark_messages_as_read(
    peerId: str,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
) -> JSONResponse:
    """Mark every message the peer sent to the caller as read."""
    try:
        count = await service.mark_read(user_id, peerId)
    except MessageError as exc:
        return _error_response("markMessagesAsRead", exc)
    return JSONResponse({"message": "Messages marked as read", "count": count})


@router.post("/reaction/{messageId}")
async def add_reaction(
    messageId: str,
    body: ReactionRequest,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
) -> JSONResponse:
    """Toggle the caller's emoji reaction on a message.

    Returns:
        The message with its current reaction list.
    """
    try:
        message = await service.toggle_reaction(messageId, user_id, body.emoji)
    except MessageError as exc:
        return _error_response("addReaction", exc)
    return JSONResponse(message.model_dump(mode="json"))


@router.put("/edit/{messageId}")
async def edit_message(
    messageId: str,
    body: EditMessageRequest,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
) -> JSONResponse:
    """Replace the text of a message the caller sent."""
    try:
        message = await service.edit_message(messageId, user_id, body.message)
    except MessageError as exc:
        return _error_response("editMessage", exc)
    return JSONResponse(message.model_dump(mode="json"))
