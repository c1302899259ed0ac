"""RealtimeHub: owns every live connection and its lifecycle.

One hub is built per application in the lifespan and kept on
``app.state.hub``. It ties together:

    - BroadcastRouter: room -> connections fan-out
    - PresenceStore: per-user connection sets, online/offline transitions
    - MessageDeliveryCoordinator: delivered/read status transitions
    - UserRepository: last-known status and last-seen timestamps

Connect:
    authenticate -> accept -> join every active room -> ``connected`` to the
    new connection -> record presence -> ``presence_update(online)`` to
    those rooms.

Disconnect (runs once per session, whatever the cause):
    unregister -> record presence -> last_seen -> if it was the user's last
    connection, ``presence_update(offline)`` to the connect-time rooms.

Presence or membership store failures never break a connection; the
lifecycle continues without that bookkeeping (a membership outage connects
the user to no rooms).
"""
import asyncio
import logging
from typing import Optional

from fastapi import WebSocket

from app.auth.service import (
    ACCOUNT_BANNED,
    AuthenticatedUser,
    TokenService,
    extract_bearer_token,
)
from app.errors import (
    AppError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)
from app.messages.repository import MessageRepository
from app.messages.schemas import MessageRecord
from app.presence import OFFLINE, ONLINE, PresenceStore
from app.rooms.membership import RoomMembershipIndex
from app.tasks import BackgroundTaskQueue
from app.users.repository import UserRepository

from .broadcast import BroadcastRouter
from .delivery import MessageDeliveryCoordinator
from .events import (
    ConnectedPayload,
    ErrorPayload,
    InboundEvent,
    InboundPayload,
    OutboundEvent,
    PresencePayload,
    UserRoomPayload,
    decode_frame,
    parse_inbound,
)
from .session import ConnectionSession

logger = logging.getLogger(__name__)

# WebSocket close codes
CLOSE_POLICY_VIOLATION = 1008
CLOSE_GOING_AWAY = 1001
CLOSE_TRY_AGAIN_LATER = 1013

_TYPING_EVENTS = {
    InboundEvent.TYPING_START: OutboundEvent.TYPING_START,
    InboundEvent.TYPING_STOP: OutboundEvent.TYPING_STOP,
}


class RealtimeHub:
    def __init__(
        self,
        tokens: TokenService,
        membership: RoomMembershipIndex,
        presence: PresenceStore,
        users: UserRepository,
        messages: MessageRepository,
        tasks: BackgroundTaskQueue,
    ) -> None:
        self._tokens = tokens
        self._membership = membership
        self._presence = presence
        self._users = users
        self._tasks = tasks
        self.router = BroadcastRouter(membership)
        self.delivery = MessageDeliveryCoordinator(messages, membership, self.router)

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def authenticate(self, websocket: WebSocket) -> AuthenticatedUser:
        """Verify the handshake credential (``?token=`` or Bearer header).

        Raises:
            AuthenticationError: missing or invalid token, or a banned
                account. No state is created.
            TransientStoreError: the ban flag could not be read.
        """
        token = extract_bearer_token(
            websocket.query_params.get("token"),
            websocket.headers.get("authorization"),
        )
        user = self._tokens.verify(token)
        if self._users.is_banned(user.user_id):
            raise AuthenticationError(ACCOUNT_BANNED)
        return user

    async def open_session(self, websocket: WebSocket, user: AuthenticatedUser) -> ConnectionSession:
        """Accept the socket and bring the connection fully online.

        If anything fails after the session is registered, the disconnect
        path runs before the error propagates, so no half-open session stays
        in the router or the presence store.
        """
        await websocket.accept()
        session = ConnectionSession(websocket, user)
        self.router.register(session)
        try:
            await self._bring_online(session)
        except BaseException:
            await self.close_session(session)
            raise
        return session

    async def _bring_online(self, session: ConnectionSession) -> None:
        user_id = session.user_id
        try:
            room_ids = self._membership.active_room_ids_for(user_id)
        except TransientStoreError as exc:
            logger.warning("[Hub] Rooms not loaded for %s: %s", user_id, exc.message)
            room_ids = []
        self.router.add_to_rooms(session, room_ids)
        session.connect_room_ids = tuple(room_ids)
        logger.info(
            "[Hub] %s connected as %s (%d rooms)",
            session.connection_id, user_id, len(room_ids),
        )

        await self.router.emit_to_connection(
            session.connection_id,
            OutboundEvent.CONNECTED,
            ConnectedPayload(
                user_id=user_id,
                connection_id=session.connection_id,
                room_ids=list(room_ids),
            ),
        )

        try:
            went_online = await self._presence.record_connect(user_id, session.connection_id)
        except TransientStoreError as exc:
            logger.warning("[Hub] Presence not recorded for %s: %s", user_id, exc.message)
            went_online = False
        if went_online:
            await self._store_status(user_id, fallback=ONLINE)

        await self._broadcast_presence(session.connect_room_ids, user_id, ONLINE)

    async def close_session(self, session: ConnectionSession) -> None:
        """Run the disconnect path. Safe to call more than once.

        The bookkeeping is shielded: cancelling the connection's task does
        not leave the user's connection set or status half-updated.
        """
        if session.ended:
            return
        session.ended = True
        session.closed = True
        self.router.unregister(session)
        await asyncio.shield(self._finish_session(session))

    async def _finish_session(self, session: ConnectionSession) -> None:
        user_id = session.user_id
        try:
            went_offline = await self._presence.record_disconnect(user_id, session.connection_id)
        except TransientStoreError as exc:
            logger.warning("[Hub] Presence not recorded for %s: %s", user_id, exc.message)
            went_offline = True

        try:
            self._users.touch_last_seen(user_id)
        except TransientStoreError as exc:
            logger.warning("[Hub] last_seen not stored for %s: %s", user_id, exc.message)
        if went_offline:
            await self._store_status(user_id, fallback=OFFLINE)

        logger.info("[Hub] %s disconnected (%s)", session.connection_id, user_id)
        if went_offline:
            await self._broadcast_presence(session.connect_room_ids, user_id, OFFLINE)

    async def _store_status(self, user_id: str, fallback: str) -> None:
        """Persist the presence store's current status after a transition.

        A connect and a disconnect of the same user can finish in either
        order; writing the store's value rather than the transition's keeps
        ``users.status`` equal to the connection set once both are done.
        """
        try:
            status = await self._presence.last_status(user_id)
        except TransientStoreError as exc:
            logger.warning("[Hub] Presence status unavailable for %s: %s", user_id, exc.message)
            status = fallback
        try:
            self._users.set_status(user_id, status)
        except TransientStoreError as exc:
            logger.warning("[Hub] Status not stored for %s: %s", user_id, exc.message)

    async def _broadcast_presence(self, room_ids, user_id: str, status: str) -> None:
        payload = PresencePayload(user_id=user_id, status=status)
        for room_id in room_ids:
            await self.router.emit_to_room(room_id, OutboundEvent.PRESENCE_UPDATE, payload)

    async def disconnect_user(self, user_id: str, reason: str) -> int:
        """Close every open connection of ``user_id`` with 1008 and run the
        disconnect path for each. Returns how many were closed."""
        sessions = [s for s in self.router.sessions() if s.user_id == user_id]
        for session in sessions:
            await session.close(code=CLOSE_POLICY_VIOLATION, reason=reason)
            await self.close_session(session)
        if sessions:
            logger.info("[Hub] Closed %d connections of %s: %s", len(sessions), user_id, reason)
        return len(sessions)

    async def shutdown(self) -> None:
        """Close every open session, wait for background jobs, release presence."""
        sessions = self.router.sessions()
        if sessions:
            logger.info("[Hub] Closing %d sessions", len(sessions))
        for session in sessions:
            await session.close(code=CLOSE_GOING_AWAY)
            await self.close_session(session)
        await self._tasks.drain()
        await self._presence.close()

    # -----------------------------------------------------------------------
    # Inbound events
    # -----------------------------------------------------------------------

    async def dispatch(self, session: ConnectionSession, text: Optional[str]) -> None:
        """Handle one inbound frame.

        ``text`` is None for a binary frame. Malformed and binary frames get an
        ``error`` event back. Every other failure is logged and dropped so the
        connection keeps going.
        """
        try:
            event, payload = parse_inbound(decode_frame(text))
        except ValidationError as exc:
            logger.debug("[Hub] Bad frame from %s: %s", session.connection_id, exc.message)
            await self.router.emit_to_connection(
                session.connection_id, OutboundEvent.ERROR, ErrorPayload(error=exc.message)
            )
            return

        try:
            await self._handle(session, event, payload)
        except AuthorizationError as exc:
            logger.info("[Hub] Dropped %s from %s: %s", event.value, session.user_id, exc.message)
        except NotFoundError as exc:
            logger.debug("[Hub] Dropped %s: %s", event.value, exc.message)
        except AppError as exc:
            logger.warning("[Hub] %s failed for %s: %s", event.value, session.user_id, exc.message)

    async def _handle(self, session: ConnectionSession, event: InboundEvent,
                      payload: InboundPayload) -> None:
        if event is InboundEvent.JOIN_ROOM:
            await self.router.join(session, payload.room_id)
        elif event in _TYPING_EVENTS:
            if payload.room_id not in session.joined_room_ids:
                raise AuthorizationError(f"{session.connection_id} has not joined {payload.room_id}")
            await self.router.emit_to_room_except(
                payload.room_id,
                _TYPING_EVENTS[event],
                UserRoomPayload(user_id=session.user_id, room_id=payload.room_id),
                exclude_connection_id=session.connection_id,
            )
        elif event is InboundEvent.MESSAGE_DELIVERED:
            await self.delivery.mark_delivered(session.user_id, payload.message_id, payload.room_id)
        elif event is InboundEvent.MESSAGES_READ:
            await self.delivery.mark_room_read(
                payload.room_id, session.user_id, exclude_connection_id=session.connection_id
            )

    # -----------------------------------------------------------------------
    # Server-originated events
    # -----------------------------------------------------------------------

    async def emit_new_message(self, record: MessageRecord) -> int:
        """Publish a freshly persisted message to its room."""
        return await self.router.emit_to_room(record.room_id, OutboundEvent.NEW_MESSAGE, record)

    def connection_count(self) -> int:
        return len(self.router.sessions())
