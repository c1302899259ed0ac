"""In-process broadcast routing: room id -> live connections.

The table only holds connections physically open in this process, so no
cross-process coordination is needed for it. A multi-process deployment
would put a pub/sub bus behind ``emit_to_room`` (publish to the bus, deliver
to local connections); that is not implemented here.

Delivery is best-effort: no acknowledgement, no retry. A connection whose
send fails is dropped from every room it was in.

Ordering:
    Each ``emit_*`` call awaits delivery to all of its targets before it
    returns, and each session serializes its own writes, so events that one
    operation emits into a room reach every connection in submission order.
    Nothing is promised across rooms or across concurrent operations.
"""
import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from pydantic import BaseModel

from app.errors import AuthorizationError
from app.rooms.membership import RoomMembershipIndex

from .events import OutboundEvent, UserRoomPayload, encode
from .session import ConnectionSession

logger = logging.getLogger(__name__)

Payload = Union[BaseModel, Dict[str, Any]]


class BroadcastRouter:
    """Owns the session registry and the per-room connection sets."""

    def __init__(self, membership: RoomMembershipIndex) -> None:
        self._membership = membership
        # connection_id -> session
        self._sessions: Dict[str, ConnectionSession] = {}
        # room_id -> connection ids joined to it
        self._rooms: Dict[str, Set[str]] = defaultdict(set)

    # -----------------------------------------------------------------------
    # Registry
    # -----------------------------------------------------------------------

    def register(self, session: ConnectionSession) -> None:
        self._sessions[session.connection_id] = session

    def unregister(self, session: ConnectionSession) -> bool:
        """Remove a session and every room entry it owns.

        Returns False if it was already gone (idempotent).
        """
        if self._sessions.pop(session.connection_id, None) is None:
            return False
        for room_id in session.joined_room_ids:
            members = self._rooms.get(room_id)
            if members is None:
                continue
            members.discard(session.connection_id)
            if not members:
                del self._rooms[room_id]
        return True

    def sessions(self) -> List[ConnectionSession]:
        return list(self._sessions.values())

    def room_connection_ids(self, room_id: str) -> Set[str]:
        return set(self._rooms.get(room_id, ()))

    # -----------------------------------------------------------------------
    # Membership
    # -----------------------------------------------------------------------

    def add_to_rooms(self, session: ConnectionSession, room_ids: Iterable[str]) -> None:
        """Batch join at connect time. ``room_ids`` must already be the
        user's active memberships."""
        for room_id in room_ids:
            self._add(session, room_id)

    def _add(self, session: ConnectionSession, room_id: str) -> None:
        self._rooms[room_id].add(session.connection_id)
        session.joined_room_ids.add(room_id)

    async def join(self, session: ConnectionSession, room_id: str) -> None:
        """Join a room on the client's request and announce it to the room.

        Raises:
            AuthorizationError: the user has no active membership; nothing
                is changed and nothing is announced.
        """
        if not self._membership.is_active_member(session.user_id, room_id):
            raise AuthorizationError(f"{session.user_id} is not a member of {room_id}")
        self._add(session, room_id)
        logger.info("[Broadcast] %s joined room %s", session.connection_id, room_id)
        await self.emit_to_room_except(
            room_id,
            OutboundEvent.USER_JOINED,
            UserRoomPayload(user_id=session.user_id, room_id=room_id),
            exclude_connection_id=session.connection_id,
        )

    # -----------------------------------------------------------------------
    # Emission
    # -----------------------------------------------------------------------

    async def emit_to_room(self, room_id: str, event: OutboundEvent, payload: Payload) -> int:
        """Deliver to every connection joined to ``room_id``. Returns the
        number of connections that accepted the frame."""
        return await self._emit(room_id, event, payload, exclude_connection_id=None)

    async def emit_to_room_except(self, room_id: str, event: OutboundEvent, payload: Payload,
                                  exclude_connection_id: str) -> int:
        """As ``emit_to_room`` but skipping the originating connection, so a
        client never gets its own typing or join signal back."""
        return await self._emit(room_id, event, payload, exclude_connection_id)

    async def emit_to_connection(self, connection_id: str, event: OutboundEvent,
                                 payload: Payload) -> bool:
        session = self._sessions.get(connection_id)
        if session is None:
            return False
        delivered = await session.send(encode(event, payload))
        if not delivered:
            self._drop(session)
        return delivered

    async def _emit(self, room_id: str, event: OutboundEvent, payload: Payload,
                    exclude_connection_id: Optional[str]) -> int:
        targets = [
            self._sessions[cid]
            for cid in self.room_connection_ids(room_id)
            if cid != exclude_connection_id and cid in self._sessions
        ]
        if not targets:
            return 0

        frame = encode(event, payload)
        results = await asyncio.gather(
            *[session.send(frame) for session in targets],
            return_exceptions=True,
        )

        delivered = 0
        for session, ok in zip(targets, results):
            if ok is True:
                delivered += 1
            else:
                self._drop(session)
        logger.debug("[Broadcast] %s -> room %s (%d/%d)", event.value, room_id, delivered, len(targets))
        return delivered

    def _drop(self, session: ConnectionSession) -> None:
        """Remove a dead connection from routing. Its disconnect path still
        runs when the endpoint notices the closed socket."""
        if self.unregister(session):
            session.closed = True
            logger.debug("[Broadcast] Removed dead connection %s", session.connection_id)
