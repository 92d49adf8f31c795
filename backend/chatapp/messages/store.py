"""DuckDB-backed storage for conversations, messages and reactions.

Database Schema:
    conversations table:
        - id: Conversation ID (UUID)
        - member_a, member_b: The two participants, sorted, so the pair is
          unordered and unique
        - created_at: When the first message was sent (UTC)

    messages table:
        - seq: Insertion sequence; conversation order is ``ORDER BY seq``
        - id, conversation_id, sender_id, receiver_id
        - message, message_type, file_url, file_name, file_size
        - status ('sent' | 'delivered' | 'read'), read_at
        - is_edited, edited_at, reply_to
        - created_at, updated_at, version

    message_reactions table:
        - (message_id, user_id, emoji): primary key, one row per toggle-on
        - created_at, seq

Every mutation is a single conditional statement or a single transaction,
so concurrent callers cannot interleave a read-modify-write on the same
message. Status updates only move forward.

Thread Safety:
    A DuckDB connection must not be used from several threads at once; all
    access goes through an internal lock.

Usage:
    store = MessageStore(":memory:")
    msg = store.create_message("alice", "bob", SendMessageRequest(message="hi"))
    store.mark_delivered(msg.id)
"""
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import duckdb

from .exceptions import MessageNotFoundError, PersistenceError
from .schemas import (
    Message,
    MessageStatus,
    MessageType,
    Reaction,
    ReplyPreview,
    SendMessageRequest,
)

logger = logging.getLogger(__name__)

_CREATE_SEQUENCES = [
    "CREATE SEQUENCE IF NOT EXISTS messages_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS message_reactions_seq START 1",
]

_CREATE_CONVERSATIONS = """
CREATE TABLE IF NOT EXISTS conversations (
    id         VARCHAR NOT NULL,
    member_a   VARCHAR NOT NULL,
    member_b   VARCHAR NOT NULL,
    created_at TIMESTAMP NOT NULL,
    PRIMARY KEY (member_a, member_b)
)
"""

_CREATE_MESSAGES = """
CREATE TABLE IF NOT EXISTS messages (
    seq             BIGINT DEFAULT nextval('messages_seq'),
    id              VARCHAR PRIMARY KEY,
    conversation_id VARCHAR NOT NULL,
    sender_id       VARCHAR NOT NULL,
    receiver_id     VARCHAR NOT NULL,
    message         VARCHAR NOT NULL,
    message_type    VARCHAR NOT NULL DEFAULT 'text',
    file_url        VARCHAR,
    file_name       VARCHAR,
    file_size       BIGINT,
    status          VARCHAR NOT NULL DEFAULT 'sent',
    read_at         TIMESTAMP,
    edited_at       TIMESTAMP,
    is_edited       BOOLEAN NOT NULL DEFAULT FALSE,
    reply_to        VARCHAR,
    created_at      TIMESTAMP NOT NULL,
    updated_at      TIMESTAMP NOT NULL,
    version         INTEGER NOT NULL DEFAULT 1
)
"""

_CREATE_REACTIONS = """
CREATE TABLE IF NOT EXISTS message_reactions (
    seq        BIGINT DEFAULT nextval('message_reactions_seq'),
    message_id VARCHAR NOT NULL,
    user_id    VARCHAR NOT NULL,
    emoji      VARCHAR NOT NULL,
    created_at TIMESTAMP NOT NULL,
    PRIMARY KEY (message_id, user_id, emoji)
)
"""

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id)",
    "CREATE INDEX IF NOT EXISTS idx_messages_pair ON messages(sender_id, receiver_id)",
]

_MESSAGE_COLUMNS = [
    "id", "conversation_id", "sender_id", "receiver_id", "message",
    "message_type", "file_url", "file_name", "file_size", "status",
    "read_at", "edited_at", "is_edited", "reply_to", "created_at",
    "updated_at", "version",
]

_SELECT_MESSAGES = f"SELECT {', '.join(_MESSAGE_COLUMNS)} FROM messages"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """TIMESTAMP columns hold naive UTC; hand them out timezone-aware."""
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


def conversation_members(user_a: str, user_b: str) -> Tuple[str, str]:
    """Canonical (sorted) member pair for an unordered conversation."""
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)


class MessageStore:
    """Persistent message storage on a single DuckDB connection."""

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._lock = threading.RLock()
        try:
            self._conn = duckdb.connect(self._db_path)
            for statement in _CREATE_SEQUENCES:
                self._conn.execute(statement)
            self._conn.execute(_CREATE_CONVERSATIONS)
            self._conn.execute(_CREATE_MESSAGES)
            self._conn.execute(_CREATE_REACTIONS)
            for statement in _INDEXES:
                self._conn.execute(statement)
        except duckdb.Error as e:
            raise PersistenceError(f"Could not open message database {db_path}") from e
        logger.info("[MessageStore] Initialized with db=%s", self._db_path)

    # -----------------------------------------------------------------------
    # Connection helpers
    # -----------------------------------------------------------------------

    @contextmanager
    def _locked(self, action: str) -> Iterator[duckdb.DuckDBPyConnection]:
        with self._lock:
            try:
                yield self._conn
            except duckdb.Error as e:
                logger.error(f"[MessageStore] Failed to {action}: {e}")
                raise PersistenceError(f"Failed to {action}") from e

    @contextmanager
    def _transaction(self, action: str) -> Iterator[duckdb.DuckDBPyConnection]:
        """Run a block atomically; any exception rolls the whole block back."""
        with self._locked(action) as conn:
            conn.begin()
            try:
                yield conn
            except Exception:
                try:
                    conn.rollback()
                except duckdb.Error as rollback_error:
                    logger.error(f"[MessageStore] Rollback failed: {rollback_error}")
                raise
            conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    # -----------------------------------------------------------------------
    # Conversations
    # -----------------------------------------------------------------------

    def find_conversation_id(self, user_a: str, user_b: str) -> Optional[str]:
        member_a, member_b = conversation_members(user_a, user_b)
        with self._locked("look up conversation") as conn:
            row = conn.execute(
                "SELECT id FROM conversations WHERE member_a = ? AND member_b = ?",
                [member_a, member_b],
            ).fetchone()
        return row[0] if row else None

    def _get_or_create_conversation(
        self, conn: duckdb.DuckDBPyConnection, user_a: str, user_b: str
    ) -> str:
        member_a, member_b = conversation_members(user_a, user_b)
        row = conn.execute(
            "SELECT id FROM conversations WHERE member_a = ? AND member_b = ?",
            [member_a, member_b],
        ).fetchone()
        if row:
            return row[0]

        conversation_id = str(uuid.uuid4())
        conn.execute(
            "INSERT INTO conversations (id, member_a, member_b, created_at) VALUES (?, ?, ?, ?)",
            [conversation_id, member_a, member_b, _utcnow()],
        )
        logger.info(
            f"[MessageStore] Created conversation {conversation_id} for {member_a} / {member_b}"
        )
        return conversation_id

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    def create_message(
        self, sender_id: str, receiver_id: str, request: SendMessageRequest
    ) -> Message:
        """Persist a new message with status 'sent'.

        The conversation is created on first use. Creating the conversation
        and inserting the message happen in one transaction.

        Raises:
            MessageNotFoundError: ``replyTo`` does not name a message in
                this conversation.
            PersistenceError: The database failed; nothing was written.
        """
        message_id = str(uuid.uuid4())
        now = _utcnow()

        with self._transaction("create message") as conn:
            conversation_id = self._get_or_create_conversation(conn, sender_id, receiver_id)

            if request.replyTo:
                target = conn.execute(
                    "SELECT conversation_id FROM messages WHERE id = ?",
                    [request.replyTo],
                ).fetchone()
                if target is None or target[0] != conversation_id:
                    raise MessageNotFoundError(request.replyTo)

            conn.execute(
                """
                INSERT INTO messages
                  (id, conversation_id, sender_id, receiver_id, message,
                   message_type, file_url, file_name, file_size, status,
                   reply_to, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'sent', ?, ?, ?)
                """,
                [
                    message_id, conversation_id, sender_id, receiver_id,
                    request.message, request.messageType.value, request.fileUrl,
                    request.fileName, request.fileSize, request.replyTo, now, now,
                ],
            )

        return self.get_message(message_id)

    def get_message(self, message_id: str) -> Optional[Message]:
        with self._locked("read message") as conn:
            row = conn.execute(f"{_SELECT_MESSAGES} WHERE id = ?", [message_id]).fetchone()
            if row is None:
                return None
            return self._hydrate(conn, [row])[0]

    def list_conversation(self, conversation_id: str) -> List[Message]:
        """All messages of a conversation in insertion order."""
        with self._locked("list conversation") as conn:
            rows = conn.execute(
                f"{_SELECT_MESSAGES} WHERE conversation_id = ? ORDER BY seq ASC",
                [conversation_id],
            ).fetchall()
            return self._hydrate(conn, rows)

    def count_messages(self, conversation_id: str) -> int:
        with self._locked("count messages") as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM messages WHERE conversation_id = ?",
                [conversation_id],
            ).fetchone()[0]

    # -----------------------------------------------------------------------
    # Status transitions
    # -----------------------------------------------------------------------

    def mark_delivered(self, message_id: str) -> bool:
        """Advance a message from 'sent' to 'delivered'.

        Returns:
            True if the status changed. A message already delivered or read
            is left alone.
        """
        with self._locked("mark message delivered") as conn:
            rows = conn.execute(
                """
                UPDATE messages SET status = 'delivered', updated_at = ?
                WHERE id = ? AND status = 'sent'
                RETURNING id
                """,
                [_utcnow(), message_id],
            ).fetchall()
        return bool(rows)

    def mark_read(self, reader_id: str, sender_id: str) -> List[str]:
        """Mark every unread message from sender to reader as read.

        Returns:
            IDs of the messages that changed status.
        """
        now = _utcnow()
        with self._locked("mark messages read") as conn:
            rows = conn.execute(
                """
                UPDATE messages SET status = 'read', read_at = ?, updated_at = ?
                WHERE sender_id = ? AND receiver_id = ? AND status <> 'read'
                RETURNING id
                """,
                [now, now, sender_id, reader_id],
            ).fetchall()
        return [row[0] for row in rows]

    # -----------------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------------

    def toggle_reaction(self, message_id: str, user_id: str, emoji: str) -> bool:
        """Remove the (user, emoji) reaction if present, add it otherwise.

        Returns:
            True if the reaction was added, False if it was removed.

        Raises:
            MessageNotFoundError: The message does not exist.
        """
        now = _utcnow()
        with self._transaction("toggle reaction") as conn:
            bumped = conn.execute(
                """
                UPDATE messages SET version = version + 1, updated_at = ?
                WHERE id = ?
                RETURNING id
                """,
                [now, message_id],
            ).fetchall()
            if not bumped:
                raise MessageNotFoundError(message_id)

            removed = conn.execute(
                """
                DELETE FROM message_reactions
                WHERE message_id = ? AND user_id = ? AND emoji = ?
                RETURNING emoji
                """,
                [message_id, user_id, emoji],
            ).fetchall()
            if removed:
                return False

            conn.execute(
                """
                INSERT INTO message_reactions (message_id, user_id, emoji, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT DO NOTHING
                """,
                [message_id, user_id, emoji, now],
            )
            return True

    def edit_message(self, message_id: str, sender_id: str, new_text: str) -> bool:
        """Overwrite a message body if ``sender_id`` wrote it.

        Returns:
            True if the message was updated, False if it does not exist or
            belongs to someone else.
        """
        now = _utcnow()
        with self._locked("edit message") as conn:
            rows = conn.execute(
                """
                UPDATE messages
                SET message = ?, is_edited = TRUE, edited_at = ?, updated_at = ?,
                    version = version + 1
                WHERE id = ? AND sender_id = ?
                RETURNING id
                """,
                [new_text, now, now, message_id, sender_id],
            ).fetchall()
        return bool(rows)

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _hydrate(
        self, conn: duckdb.DuckDBPyConnection, rows: Sequence[tuple]
    ) -> List[Message]:
        """Turn message rows into Message models with reactions and replies."""
        if not rows:
            return []
        records = [dict(zip(_MESSAGE_COLUMNS, row)) for row in rows]

        ids = [r["id"] for r in records]
        reactions = self._load_reactions(conn, ids)

        reply_ids = sorted({r["reply_to"] for r in records if r["reply_to"]})
        replies = self._load_reply_previews(conn, reply_ids)

        return [
            Message(
                id=r["id"],
                conversationId=r["conversation_id"],
                senderId=r["sender_id"],
                receiverId=r["receiver_id"],
                message=r["message"],
                messageType=MessageType(r["message_type"]),
                fileUrl=r["file_url"],
                fileName=r["file_name"],
                fileSize=r["file_size"],
                status=MessageStatus(r["status"]),
                readAt=_as_utc(r["read_at"]),
                editedAt=_as_utc(r["edited_at"]),
                isEdited=bool(r["is_edited"]),
                replyTo=replies.get(r["reply_to"]) if r["reply_to"] else None,
                reactions=reactions.get(r["id"], []),
                createdAt=_as_utc(r["created_at"]),
                updatedAt=_as_utc(r["updated_at"]),
                version=r["version"],
            )
            for r in records
        ]

    def _load_reactions(
        self, conn: duckdb.DuckDBPyConnection, message_ids: List[str]
    ) -> Dict[str, List[Reaction]]:
        placeholders = ", ".join("?" for _ in message_ids)
        rows = conn.execute(
            f"""
            SELECT message_id, user_id, emoji, created_at
            FROM message_reactions
            WHERE message_id IN ({placeholders})
            ORDER BY seq ASC
            """,
            message_ids,
        ).fetchall()

        by_message: Dict[str, List[Reaction]] = {}
        for message_id, user_id, emoji, created_at in rows:
            by_message.setdefault(message_id, []).append(
                Reaction(userId=user_id, emoji=emoji, createdAt=_as_utc(created_at))
            )
        return by_message

    def _load_reply_previews(
        self, conn: duckdb.DuckDBPyConnection, message_ids: List[str]
    ) -> Dict[str, ReplyPreview]:
        if not message_ids:
            return {}
        placeholders = ", ".join("?" for _ in message_ids)
        rows = conn.execute(
            f"""
            SELECT id, message, sender_id, created_at
            FROM messages
            WHERE id IN ({placeholders})
            """,
            message_ids,
        ).fetchall()
        return {
            row[0]: ReplyPreview(
                id=row[0], message=row[1], senderId=row[2], createdAt=_as_utc(row[3])
            )
            for row in rows
        }
