"""Message delivery pipeline and message mutators.

MessageService ties the store to the realtime hub:

    send            persist → push newMessage → advance to 'delivered'
    fetch           mark peer's messages read → push messagesRead → list
    mark_read       mark peer's messages read → push messagesRead
    toggle_reaction toggle (user, emoji) → push messageReaction to both sides
    edit_message    sender-only overwrite → push messageEdited to both sides

Pushes go only to users present in the presence registry. An offline
recipient is not an error: the message stays 'sent' and is picked up by
the next fetch. 'delivered' means the push was handed to the recipient's
registered connection, not that the client acknowledged it.
"""
import logging
from typing import List, Optional

from chatapp.realtime.hub import ConnectionHub

from .exceptions import MessageNotFoundError, NotAuthorizedError
from .schemas import Message, MessageStatus, ReactionEvent, SendMessageRequest
from .store import MessageStore

logger = logging.getLogger(__name__)

NEW_MESSAGE = "newMessage"
MESSAGES_READ = "messagesRead"
MESSAGE_REACTION = "messageReaction"
MESSAGE_EDITED = "messageEdited"


class MessageService:
    """Persists messages and fans out their changes to online participants."""

    def __init__(self, store: MessageStore, hub: ConnectionHub) -> None:
        self.store = store
        self.hub = hub

    async def send(
        self, sender_id: str, recipient_id: str, content: SendMessageRequest
    ) -> Message:
        """Store a message and try to push it to the recipient right away.

        Raises:
            MessageNotFoundError: ``content.replyTo`` is not a message of
                this conversation.
            PersistenceError: The message could not be stored.
        """
        message = self.store.create_message(sender_id, recipient_id, content)
        logger.info(
            f"[Messages] {sender_id} -> {recipient_id}: stored {message.id} "
            f"({message.messageType.value})"
        )

        pushed = await self.hub.emit_to_user(
            recipient_id, NEW_MESSAGE, message.model_dump(mode="json")
        )
        if pushed and self.store.mark_delivered(message.id):
            message = self.store.get_message(message.id) or message.model_copy(
                update={"status": MessageStatus.DELIVERED}
            )
            logger.info(f"[Messages] {message.id} delivered to {recipient_id}")

        return message

    async def fetch(self, requester_id: str, peer_id: str) -> List[Message]:
        """Return the conversation with ``peer_id``, oldest first.

        Every message the peer sent to the requester that is not yet read is
        marked read; if that changed anything and the peer is online, the
        peer receives ``messagesRead``.
        """
        conversation_id = self.store.find_conversation_id(requester_id, peer_id)
        if conversation_id is None:
            return []

        newly_read = self.store.mark_read(reader_id=requester_id, sender_id=peer_id)
        if newly_read:
            logger.info(
                f"[Messages] {requester_id} read {len(newly_read)} message(s) from {peer_id}"
            )
            await self.hub.emit_to_user(peer_id, MESSAGES_READ, {"readBy": requester_id})

        return self.store.list_conversation(conversation_id)

    async def mark_read(self, reader_id: str, sender_id: str) -> int:
        """Mark the sender's messages to the reader as read.

        The sender is always told (if online), even when nothing changed.

        Returns:
            Number of messages whose status changed.
        """
        newly_read = self.store.mark_read(reader_id=reader_id, sender_id=sender_id)
        await self.hub.emit_to_user(sender_id, MESSAGES_READ, {"readBy": reader_id})
        return len(newly_read)

    async def toggle_reaction(self, message_id: str, user_id: str, emoji: str) -> Message:
        """Add or remove ``emoji`` from ``user_id`` on a message.

        Raises:
            MessageNotFoundError: No such message.
            NotAuthorizedError: The user is not a participant.
        """
        message = self._require_message(message_id)
        if user_id not in (message.senderId, message.receiverId):
            raise NotAuthorizedError("Not authorized to react to this message")

        is_added = self.store.toggle_reaction(message_id, user_id, emoji)
        logger.info(
            f"[Messages] Reaction {emoji} {'added to' if is_added else 'removed from'} "
            f"{message_id} by {user_id}"
        )

        event = ReactionEvent(messageId=message_id, userId=user_id, emoji=emoji, isAdded=is_added)
        await self.hub.emit_to_users(
            [message.senderId, message.receiverId], MESSAGE_REACTION, event.model_dump()
        )
        return self._require_message(message_id)

    async def edit_message(self, message_id: str, user_id: str, new_text: str) -> Message:
        """Overwrite a message body. Only the sender may do this.

        Raises:
            MessageNotFoundError: No such message.
            NotAuthorizedError: The caller is not the sender.
        """
        message = self._require_message(message_id)
        if message.senderId != user_id:
            raise NotAuthorizedError("Not authorized to edit this message")

        if not self.store.edit_message(message_id, user_id, new_text):
            raise NotAuthorizedError("Not authorized to edit this message")

        edited = self._require_message(message_id)
        logger.info(f"[Messages] {message_id} edited by {user_id}")

        await self.hub.emit_to_users(
            [edited.senderId, edited.receiverId], MESSAGE_EDITED, edited.model_dump(mode="json")
        )
        return edited

    def _require_message(self, message_id: str) -> Message:
        message = self.store.get_message(message_id)
        if message is None:
            raise MessageNotFoundError(message_id)
        return message


_service: Optional[MessageService] = None


def get_message_service() -> MessageService:
    """Get the global message service (set during application startup)."""
    if _service is None:
        raise RuntimeError("Message service is not initialised")
    return _service


def set_message_service(service: Optional[MessageService]) -> None:
    global _service
    _service = service
