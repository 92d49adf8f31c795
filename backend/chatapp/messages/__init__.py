"""Direct messages: storage, delivery pipeline and REST endpoints."""

from .exceptions import (
    MessageError,
    MessageNotFoundError,
    NotAuthorizedError,
    PersistenceError,
)
from .schemas import (
    EditMessageRequest,
    Message,
    MessageStatus,
    MessageType,
    Reaction,
    ReactionEvent,
    ReactionRequest,
    ReplyPreview,
    SendMessageRequest,
)
from .service import MessageService, get_message_service, set_message_service
from .store import MessageStore
from .router import router

__all__ = [
    "EditMessageRequest",
    "Message",
    "MessageError",
    "MessageNotFoundError",
    "MessageService",
    "MessageStatus",
    "MessageStore",
    "MessageType",
    "NotAuthorizedError",
    "PersistenceError",
    "Reaction",
    "ReactionEvent",
    "ReactionRequest",
    "ReplyPreview",
    "SendMessageRequest",
    "get_message_service",
    "router",
    "set_message_service",
]
