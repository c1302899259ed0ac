"""Message status transitions and their real-time fan-out.

State machine per message::

    sent -> delivered -> read   (read is terminal)

Both operations are conditional/bulk UPDATEs, so repeating them never
regresses a status. They still broadcast every time; clients de-duplicate.
"""
import logging
from typing import Optional

from app.errors import AuthorizationError
from app.messages.repository import MessageRepository
from app.rooms.membership import RoomMembershipIndex

from .broadcast import BroadcastRouter
from .events import MessageStatusPayload, OutboundEvent, UserRoomPayload

logger = logging.getLogger(__name__)


class MessageDeliveryCoordinator:
    def __init__(self, messages: MessageRepository, membership: RoomMembershipIndex,
                 router: BroadcastRouter) -> None:
        self._messages = messages
        self._membership = membership
        self._router = router

    def _require_member(self, user_id: str, room_id: str) -> None:
        if not self._membership.is_active_member(user_id, room_id):
            raise AuthorizationError(f"{user_id} is not a member of {room_id}")

    async def mark_delivered(self, user_id: str, message_id: str, room_id: str) -> bool:
        """Advance ``message_id`` from sent to delivered and tell the room.

        Returns:
            True if the persisted status changed.

        Raises:
            AuthorizationError: the acknowledging user is not in the room.
            NotFoundError: no such message in that room. Nothing is emitted.
        """
        self._require_member(user_id, room_id)
        changed = self._messages.mark_delivered(message_id, room_id)
        if not changed:
            logger.debug("[Delivery] %s already past sent", message_id)
        await self._router.emit_to_room(
            room_id,
            OutboundEvent.MESSAGE_STATUS_UPDATED,
            MessageStatusPayload(message_id=message_id),
        )
        return changed

    async def mark_room_read(self, room_id: str, reader_id: str,
                             exclude_connection_id: Optional[str] = None) -> int:
        """Mark everything in the room not sent by ``reader_id`` as read,
        move the reader's ``last_read_at`` to now and tell the room.

        Returns:
            Number of messages that changed status.
        """
        self._require_member(reader_id, room_id)
        changed = self._messages.mark_room_read(room_id, reader_id)
        self._membership.mark_read(room_id, reader_id)
        logger.info("[Delivery] %s read room %s (%d updated)", reader_id, room_id, changed)

        payload = UserRoomPayload(user_id=reader_id, room_id=room_id)
        if exclude_connection_id is None:
            await self._router.emit_to_room(room_id, OutboundEvent.MESSAGES_READ, payload)
        else:
            await self._router.emit_to_room_except(
                room_id, OutboundEvent.MESSAGES_READ, payload, exclude_connection_id
            )
        return changed
