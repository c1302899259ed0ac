"""Presence store: per-user connection sets and derived online/offline status.

A user is online iff their connection set is non-empty. Each backend makes
"add and check if the set was empty" and "remove and check if it became
empty" a single atomic step, and writes the last-known status key in the
same step, so only the connection that crosses zero writes a status:

    {} -> {a} -> {a, b} -> {b} -> {}
       online                  offline      (exactly two status writes)

Keys (Redis backend):
    presence:<user_id>     SET of connection ids
    user:status:<user_id>  "online" | "offline"

Failures of the backing store surface as ``TransientStoreError``; callers
treat presence as degradable and carry on with the connection lifecycle.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Optional, Set

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.errors import TransientStoreError

logger = logging.getLogger(__name__)

ONLINE = "online"
OFFLINE = "offline"

PRESENCE_KEY = "presence:{user_id}"
STATUS_KEY = "user:status:{user_id}"


# =============================================================================
# Backends
# =============================================================================


class PresenceBackend(ABC):
    """Atomic primitives over a per-user set of connection ids."""

    @abstractmethod
    async def add_connection(self, user_id: str, connection_id: str) -> bool:
        """Add; if the set was empty, set status online and return True."""

    @abstractmethod
    async def remove_connection(self, user_id: str, connection_id: str) -> bool:
        """Remove; if the set became empty, set status offline and return True."""

    @abstractmethod
    async def connection_count(self, user_id: str) -> int:
        ...

    @abstractmethod
    async def last_status(self, user_id: str) -> Optional[str]:
        ...

    async def close(self) -> None:
        return None


# Both scripts run atomically inside Redis: no other command can interleave
# between the set mutation, the cardinality check and the status write.
_ADD_SCRIPT = """
local added = redis.call('SADD', KEYS[1], ARGV[1])
if added == 1 and redis.call('SCARD', KEYS[1]) == 1 then
    redis.call('SET', KEYS[2], 'online')
    return 1
end
return 0
"""

_REMOVE_SCRIPT = """
local removed = redis.call('SREM', KEYS[1], ARGV[1])
if removed == 1 and redis.call('SCARD', KEYS[1]) == 0 then
    redis.call('SET', KEYS[2], 'offline')
    return 1
end
return 0
"""


class RedisPresenceBackend(PresenceBackend):
    """Presence shared through Redis so several processes see one view."""

    def __init__(self, client: Redis) -> None:
        self._client = client
        self._add = client.register_script(_ADD_SCRIPT)
        self._remove = client.register_script(_REMOVE_SCRIPT)

    @classmethod
    def from_url(cls, url: str) -> "RedisPresenceBackend":
        client = Redis.from_url(url, encoding="utf-8", decode_responses=True)
        logger.info("[Presence] Redis client initialized")
        return cls(client)

    @staticmethod
    def _keys(user_id: str) -> list:
        return [PRESENCE_KEY.format(user_id=user_id), STATUS_KEY.format(user_id=user_id)]

    async def add_connection(self, user_id: str, connection_id: str) -> bool:
        try:
            return int(await self._add(keys=self._keys(user_id), args=[connection_id])) == 1
        except RedisError as exc:
            raise TransientStoreError(f"Presence store unavailable: {exc}") from exc

    async def remove_connection(self, user_id: str, connection_id: str) -> bool:
        try:
            return int(await self._remove(keys=self._keys(user_id), args=[connection_id])) == 1
        except RedisError as exc:
            raise TransientStoreError(f"Presence store unavailable: {exc}") from exc

    async def connection_count(self, user_id: str) -> int:
        try:
            return int(await self._client.scard(PRESENCE_KEY.format(user_id=user_id)))
        except RedisError as exc:
            raise TransientStoreError(f"Presence store unavailable: {exc}") from exc

    async def last_status(self, user_id: str) -> Optional[str]:
        try:
            return await self._client.get(STATUS_KEY.format(user_id=user_id))
        except RedisError as exc:
            raise TransientStoreError(f"Presence store unavailable: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("[Presence] Redis client closed")


class InMemoryPresenceBackend(PresenceBackend):
    """Single-process presence. Useful for local dev and tests."""

    def __init__(self) -> None:
        self._connections: Dict[str, Set[str]] = defaultdict(set)
        self._status: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    def _write_status(self, user_id: str, status: str) -> None:
        self._status[user_id] = status

    async def add_connection(self, user_id: str, connection_id: str) -> bool:
        async with self._lock:
            connections = self._connections[user_id]
            was_empty = not connections
            if connection_id in connections:
                return False
            connections.add(connection_id)
            if was_empty:
                self._write_status(user_id, ONLINE)
            return was_empty

    async def remove_connection(self, user_id: str, connection_id: str) -> bool:
        async with self._lock:
            connections = self._connections.get(user_id)
            if not connections or connection_id not in connections:
                return False
            connections.discard(connection_id)
            if connections:
                return False
            self._write_status(user_id, OFFLINE)
            return True

    async def connection_count(self, user_id: str) -> int:
        async with self._lock:
            return len(self._connections.get(user_id, ()))

    async def last_status(self, user_id: str) -> Optional[str]:
        return self._status.get(user_id)


# =============================================================================
# Store
# =============================================================================


class PresenceStore:
    """Records connects/disconnects and answers "is this user online"."""

    def __init__(self, backend: PresenceBackend) -> None:
        self._backend = backend

    async def record_connect(self, user_id: str, connection_id: str) -> bool:
        """Returns True when this connect took the user from offline to online."""
        went_online = await self._backend.add_connection(user_id, connection_id)
        if went_online:
            logger.info("[Presence] %s is online", user_id)
        return went_online

    async def record_disconnect(self, user_id: str, connection_id: str) -> bool:
        """Returns True when this disconnect closed the user's last connection."""
        went_offline = await self._backend.remove_connection(user_id, connection_id)
        if went_offline:
            logger.info("[Presence] %s is offline", user_id)
        return went_offline

    async def is_online(self, user_id: str) -> bool:
        return await self._backend.connection_count(user_id) > 0

    async def last_status(self, user_id: str) -> str:
        return await self._backend.last_status(user_id) or OFFLINE

    async def close(self) -> None:
        await self._backend.close()
