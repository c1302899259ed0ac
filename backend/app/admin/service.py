"""AdminService: account bans, moderation decisions and counters.

Banning closes the user's open connections (1008, ``"Account banned"``);
further HTTP requests and handshakes with that account are refused.

Review actions:
    approve: the held message becomes visible and ``new_message`` is
        emitted to its room
    reject:  the message stays hidden
    delete:  as reject, and the message is soft-deleted for good
"""
import logging
from typing import List

from app.auth.service import ACCOUNT_BANNED
from app.errors import NotFoundError, ValidationError
from app.messages.moderation import ModerationQueue
from app.messages.repository import MessageRepository
from app.messages.schemas import ReviewItem
from app.realtime.hub import RealtimeHub
from app.storage import Database
from app.users.repository import UserRepository
from app.users.schemas import AdminUserView

from .schemas import AdminStats

logger = logging.getLogger(__name__)

USER_LIST_LIMIT = 200


class AdminService:
    def __init__(
        self,
        db: Database,
        users: UserRepository,
        messages: MessageRepository,
        review_queue: ModerationQueue,
        hub: RealtimeHub,
    ) -> None:
        self._db = db
        self._users = users
        self._messages = messages
        self._review_queue = review_queue
        self._hub = hub

    def list_users(self) -> List[AdminUserView]:
        return self._users.list_for_admin(limit=USER_LIST_LIMIT)

    async def set_banned(self, user_id: str, banned: bool) -> AdminUserView:
        if not self._users.set_banned(user_id, banned):
            raise NotFoundError("User not found")
        if banned:
            await self._hub.disconnect_user(user_id, ACCOUNT_BANNED)
        profile = self._users.get_user(user_id)
        return AdminUserView(**profile.model_dump(), is_banned=banned)

    def review_queue(self, status: str = "pending") -> List[ReviewItem]:
        return self._review_queue.list_items(status)

    async def resolve_review(self, item_id: str, action: str, admin_id: str) -> ReviewItem:
        """Apply an admin decision to a pending queue item.

        Raises:
            NotFoundError: no such queue item.
            ValidationError: the item was already resolved.
        """
        item = self._review_queue.get(item_id)
        if item is None:
            raise NotFoundError("Queue item not found")
        status = "approved" if action == "approve" else "rejected"
        if not self._review_queue.resolve(item_id, status, admin_id):
            raise ValidationError("Queue item already resolved")
        logger.info("[Admin] %s resolved %s as %s (%s)", admin_id, item_id, status, action)

        if action == "approve":
            record = self._messages.restore(item.message_id)
            await self._hub.emit_new_message(record)
        elif action == "delete":
            self._messages.soft_delete(item.message_id)
        return self._review_queue.get(item_id)

    def stats(self) -> AdminStats:
        return AdminStats(
            total_users=self._count("SELECT COUNT(*) FROM users"),
            total_messages=self._count("SELECT COUNT(*) FROM messages WHERE is_deleted = FALSE"),
            total_rooms=self._count("SELECT COUNT(*) FROM rooms"),
            pending_moderation=self._review_queue.pending_count(),
            active_connections=self._hub.connection_count(),
        )

    def _count(self, sql: str) -> int:
        return int(self._db.fetchone(sql)[0])
