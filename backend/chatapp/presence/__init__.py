"""Presence tracking: which user is online, on which connection."""

from .registry import InMemoryPresenceRegistry, PresenceRegistry

__all__ = ["InMemoryPresenceRegistry", "PresenceRegistry"]
