"""Presence module: who is online, derived from open connections."""

from .store import (
    OFFLINE,
    ONLINE,
    InMemoryPresenceBackend,
    PresenceBackend,
    PresenceStore,
    RedisPresenceBackend,
)

__all__ = [
    "OFFLINE",
    "ONLINE",
    "InMemoryPresenceBackend",
    "PresenceBackend",
    "PresenceStore",
    "RedisPresenceBackend",
]
