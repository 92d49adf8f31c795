"""Pydantic schemas for direct messages.

Field names are camelCase because these objects go over the wire as-is,
both in REST responses and in realtime events.

These schemas are used by:
    - MessageStore: DuckDB rows are mapped onto Message / Reaction
    - MessageService: payloads for newMessage, messageEdited, etc.
    - /api/message/*: request bodies and responses
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class MessageType(str, Enum):
    """Kind of content a message carries.

    Attributes:
        TEXT: Plain text in ``message``.
        IMAGE, FILE, VIDEO, AUDIO: ``message`` is a caption and the
            ``fileUrl``/``fileName``/``fileSize`` fields describe the upload.
    """
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    VIDEO = "video"
    AUDIO = "audio"


class MessageStatus(str, Enum):
    """Delivery lifecycle. Only ever moves forward: sent → delivered → read.

    Attributes:
        SENT: Persisted; the recipient was not reached by a push.
        DELIVERED: Pushed to the recipient's registered connection.
        READ: The recipient fetched the conversation or marked it read.
    """
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


class Reaction(BaseModel):
    """One user's emoji on a message."""
    userId: str
    emoji: str
    createdAt: datetime


class ReplyPreview(BaseModel):
    """The slice of a replied-to message embedded in its reply."""
    id: str
    message: str
    senderId: str
    createdAt: datetime


class Message(BaseModel):
    """A persisted direct message.

    Attributes:
        id: Unique message ID (UUID).
        conversationId: Conversation the message belongs to.
        senderId: Author.
        receiverId: The other participant.
        message: Text body (caption for media messages).
        messageType: Content kind.
        fileUrl, fileName, fileSize: Upload metadata for media messages.
        status: Delivery status.
        readAt: When the receiver read it.
        editedAt: Last edit time.
        isEdited: Whether the body was ever edited.
        replyTo: Preview of the message this one replies to.
        reactions: Reactions in the order they were added.
        createdAt, updatedAt: Row timestamps (UTC).
        version: Incremented on every edit or reaction change.
    """
    id: str
    conversationId: str
    senderId: str
    receiverId: str
    message: str
    messageType: MessageType = MessageType.TEXT
    fileUrl: Optional[str] = None
    fileName: Optional[str] = None
    fileSize: Optional[int] = None
    status: MessageStatus = MessageStatus.SENT
    readAt: Optional[datetime] = None
    editedAt: Optional[datetime] = None
    isEdited: bool = False
    replyTo: Optional[ReplyPreview] = None
    reactions: List[Reaction] = Field(default_factory=list)
    createdAt: datetime
    updatedAt: datetime
    version: int = 1


class SendMessageRequest(BaseModel):
    """Request body for POST /api/message/send/{recipientId}."""
    message: str = Field(..., min_length=1, description="Text body or caption")
    messageType: MessageType = Field(default=MessageType.TEXT)
    fileUrl: Optional[str] = None
    fileName: Optional[str] = None
    fileSize: Optional[int] = Field(default=None, ge=0)
    replyTo: Optional[str] = Field(default=None, description="ID of the message being replied to")


class ReactionRequest(BaseModel):
    """Request body for POST /api/message/reaction/{messageId}."""
    emoji: str = Field(..., min_length=1, max_length=32)


class EditMessageRequest(BaseModel):
    """Request body for PUT /api/message/edit/{messageId}."""
    message: str = Field(..., min_length=1)


class ReactionEvent(BaseModel):
    """Payload of the messageReaction event: the delta, not the full list."""
    messageId: str
    userId: str
    emoji: str
    isAdded: bool
