"""Presence registry mapping user IDs to their live connection.

The registry is the single source of truth for "who is online". Each user
maps to at most one connection ID; a new connection for the same user
replaces the old mapping (last connect wins, no multi-device support).

The state is process-local. It does not survive a restart and it does not
see connections held by other server processes. Callers depend on the
``PresenceRegistry`` interface so a shared store can be dropped in instead.

Usage:
    registry = InMemoryPresenceRegistry()
    registry.register("user-1", "conn-a")
    registry.lookup("user-1")   # "conn-a"
    registry.snapshot()         # {"user-1"}
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)


class PresenceRegistry(ABC):
    """Abstract interface for presence storage.

    All operations are total: none of them raise for unknown users.
    """

    @abstractmethod
    def register(self, user_id: str, connection_id: str) -> None:
        """Map a user to a connection, overwriting any previous mapping."""

    @abstractmethod
    def unregister(self, user_id: str, connection_id: Optional[str] = None) -> bool:
        """Remove a user's mapping.

        Args:
            user_id: The user to remove.
            connection_id: If given, only remove the mapping when it still
                points at this connection. A connection that was replaced by
                a reconnect must not evict its successor.

        Returns:
            True if a mapping was removed.
        """

    @abstractmethod
    def lookup(self, user_id: str) -> Optional[str]:
        """Return the user's connection ID, or None when offline."""

    @abstractmethod
    def snapshot(self) -> Set[str]:
        """Return the set of currently registered user IDs."""

    def is_online(self, user_id: str) -> bool:
        return self.lookup(user_id) is not None


class InMemoryPresenceRegistry(PresenceRegistry):
    """Dictionary-backed registry for a single event-loop process.

    Not thread-safe; all access is expected from the asyncio loop.
    """

    def __init__(self) -> None:
        # user_id -> connection_id
        self._connections: Dict[str, str] = {}

    def register(self, user_id: str, connection_id: str) -> None:
        previous = self._connections.get(user_id)
        self._connections[user_id] = connection_id
        if previous and previous != connection_id:
            logger.info(
                f"[Presence] User {user_id} reconnected: {previous} replaced by {connection_id}"
            )
        else:
            logger.info(f"[Presence] User {user_id} registered on {connection_id}")

    def unregister(self, user_id: str, connection_id: Optional[str] = None) -> bool:
        current = self._connections.get(user_id)
        if current is None:
            return False
        if connection_id is not None and current != connection_id:
            logger.debug(
                f"[Presence] Ignoring stale unregister of {user_id} from {connection_id}"
            )
            return False
        del self._connections[user_id]
        logger.info(f"[Presence] User {user_id} unregistered")
        return True

    def lookup(self, user_id: str) -> Optional[str]:
        return self._connections.get(user_id)

    def snapshot(self) -> Set[str]:
        return set(self._connections)

    def __len__(self) -> int:
        return len(self._connections)

