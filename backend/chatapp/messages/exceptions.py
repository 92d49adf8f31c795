"""Errors raised by the message store and service."""


class MessageError(Exception):
    """Base class for message operation failures."""


class MessageNotFoundError(MessageError):
    """A referenced message does not exist."""

    def __init__(self, message_id: str) -> None:
        super().__init__(f"Message not found: {message_id}")
        self.message_id = message_id


class NotAuthorizedError(MessageError):
    """The caller may not perform this operation on the message."""


class PersistenceError(MessageError):
    """The database rejected or failed a read or write."""
