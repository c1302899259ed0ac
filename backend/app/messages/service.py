"""MessageService: the message send path.

Sending validates membership and content, runs moderation, persists the
message with status ``sent`` and then queues translation for recipients.
A message the moderation check blocks is stored hidden, queued for admin
review and rejected to the sender.

Publishing ``new_message`` to the room is left to the caller (the HTTP
router hands the record to the real-time hub).
"""
import html
import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from app.config import MessageSettings
from app.errors import AuthorizationError, NotFoundError, ValidationError
from app.rooms.membership import RoomMembershipIndex
from app.storage import utc_now_naive
from app.tasks import BackgroundTaskQueue

from .moderation import ModerationQueue, ModerationService
from .repository import MessageRepository
from .schemas import MessageRecord, SendMessageRequest
from .translation import TranslationService

logger = logging.getLogger(__name__)


class MessageService:
    def __init__(
        self,
        messages: MessageRepository,
        membership: RoomMembershipIndex,
        moderation: ModerationService,
        review_queue: ModerationQueue,
        translation: TranslationService,
        tasks: BackgroundTaskQueue,
        settings: MessageSettings,
    ) -> None:
        self._messages = messages
        self._membership = membership
        self._moderation = moderation
        self._review_queue = review_queue
        self._translation = translation
        self._tasks = tasks
        self._settings = settings

    def list_messages(
        self,
        room_id: str,
        user_id: str,
        before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[MessageRecord]:
        if not self._membership.is_active_member(user_id, room_id):
            raise AuthorizationError("Access denied")
        limit = limit or self._settings.default_page_size
        limit = max(1, min(limit, self._settings.max_page_size))
        return self._messages.list_page(room_id, before, limit)

    async def send_message(
        self, sender_id: str, room_id: str, request: SendMessageRequest
    ) -> MessageRecord:
        if not self._membership.is_active_member(sender_id, room_id):
            raise AuthorizationError("Access denied")
        if not request.content and not request.attachment_url:
            raise ValidationError("Message must have content or attachment")
        if request.content and len(request.content) > self._settings.max_content_length:
            raise ValidationError("Message is too long")

        content = html.escape(request.content) if request.content else None
        verdict = None
        if content:
            verdict = await self._moderation.check_content(content)

        expires_at = (
            utc_now_naive() + timedelta(seconds=request.ttl) if request.ttl else None
        )
        blocked = verdict is not None and verdict.blocked
        record = self._messages.insert(
            message_id=str(uuid.uuid4()),
            sender_id=sender_id,
            room_id=room_id,
            content=content,
            attachment_url=request.attachment_url,
            attachment_type=request.attachment_type,
            reply_to_id=request.reply_to_id,
            expires_at=expires_at,
            hidden=blocked,
        )
        if blocked:
            self._review_queue.queue_for_review(record.id, verdict.reason)
            raise ValidationError("Message blocked by moderation")
        logger.info("[Messages] %s sent %s to room %s", sender_id, record.id, room_id)

        if content and self._translation.enabled:
            self._tasks.submit(
                lambda: self._translate_for_members(record.id, content, room_id, sender_id),
                name=f"translate:{record.id}",
            )
        return record

    async def _translate_for_members(
        self, message_id: str, content: str, room_id: str, sender_id: str
    ) -> None:
        languages = {lang for _, lang in self._messages.recipient_languages(room_id, sender_id)}
        for language in sorted(languages):
            result = await self._translation.translate(content, language)
            if result is not None:
                self._messages.save_translation(message_id, language, result.text, result.confidence)

    def delete_message(self, message_id: str, user_id: str) -> None:
        sender = self._messages.sender_of(message_id)
        if sender is None:
            raise NotFoundError("Message not found")
        if sender != user_id:
            raise AuthorizationError("Cannot delete others' messages")
        self._messages.soft_delete(message_id)
