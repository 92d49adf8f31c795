"""Typing indicator relay with server-side expiry.

A ``typing`` signal from a sender is forwarded to the recipient as
``userTyping``; ``stopTyping`` becomes ``userStoppedTyping``. If the
recipient is offline the signal is dropped. Nothing is queued or persisted.

Each (sender, recipient) pair that is currently typing holds an expiry
task. A fresh ``typing`` re-arms it; when it fires the coordinator sends
``userStoppedTyping`` on the sender's behalf, so a sender whose client
vanished mid-sentence does not leave a stuck indicator behind.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from .hub import ConnectionHub

logger = logging.getLogger(__name__)

USER_TYPING = "userTyping"
USER_STOPPED_TYPING = "userStoppedTyping"

TypingKey = Tuple[str, str]


class TypingCoordinator:
    """Relays typing signals and expires them after ``ttl`` seconds."""

    def __init__(self, hub: ConnectionHub, ttl: float = 5.0) -> None:
        self.hub = hub
        self.ttl = ttl
        # (sender_id, recipient_id) -> pending expiry task
        self._expiries: Dict[TypingKey, asyncio.Task] = {}

    async def notify_typing(self, sender_id: str, recipient_id: str) -> bool:
        """Forward a typing signal and (re)arm its expiry.

        Returns:
            True if the recipient was online and the signal was pushed.
        """
        delivered = await self.hub.emit_to_user(
            recipient_id, USER_TYPING, {"senderId": sender_id}
        )
        if delivered:
            self._arm(sender_id, recipient_id)
        else:
            self._cancel((sender_id, recipient_id))
        return delivered

    async def notify_stop_typing(self, sender_id: str, recipient_id: str) -> bool:
        self._cancel((sender_id, recipient_id))
        return await self.hub.emit_to_user(
            recipient_id, USER_STOPPED_TYPING, {"senderId": sender_id}
        )

    async def clear_sender(self, sender_id: str) -> List[str]:
        """Stop every typing indicator a sender currently has up.

        Called when the sender's connection closes.

        Returns:
            The recipient IDs that were notified.
        """
        recipients = [r for (s, r) in self._expiries if s == sender_id]
        for recipient_id in recipients:
            await self.notify_stop_typing(sender_id, recipient_id)
        return recipients

    def is_typing(self, sender_id: str, recipient_id: str) -> bool:
        return (sender_id, recipient_id) in self._expiries

    def active_pairs(self) -> List[TypingKey]:
        return list(self._expiries)

    def shutdown(self) -> None:
        """Cancel all pending expiries without notifying anyone."""
        for task in self._expiries.values():
            task.cancel()
        self._expiries.clear()

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _arm(self, sender_id: str, recipient_id: str) -> None:
        key = (sender_id, recipient_id)
        self._cancel(key)
        self._expiries[key] = asyncio.create_task(self._expire(key))

    def _cancel(self, key: TypingKey) -> None:
        task: Optional[asyncio.Task] = self._expiries.pop(key, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _expire(self, key: TypingKey) -> None:
        await asyncio.sleep(self.ttl)
        sender_id, recipient_id = key
        if self._expiries.get(key) is not asyncio.current_task():
            return
        logger.debug(f"[Typing] Indicator {sender_id} -> {recipient_id} expired")
        await self.notify_stop_typing(sender_id, recipient_id)
