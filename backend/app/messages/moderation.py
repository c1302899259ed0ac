"""Content moderation: stub provider and the review queue.

The ``stub`` provider matches content against the configured regex
blocklist. ``none`` disables moderation entirely. A hosted moderation API
can be added as another provider behind ``check_content``.

Blocked messages are stored hidden and queued in ``moderation_queue``;
admins approve (the message becomes visible) or reject them.
"""
import logging
import re
import uuid
from dataclasses import dataclass
from typing import List, Optional

from app.config import ModerationSettings
from app.storage import Database, utc_now_naive

from .schemas import ReviewItem

logger = logging.getLogger(__name__)


@dataclass
class ModerationResult:
    blocked: bool
    reason: Optional[str] = None
    score: float = 0.0


class ModerationService:
    def __init__(self, settings: ModerationSettings) -> None:
        self._provider = settings.provider
        self._patterns: List[re.Pattern] = [
            re.compile(p, re.IGNORECASE) for p in settings.blocked_patterns
        ]

    async def check_content(self, content: str) -> ModerationResult:
        if self._provider == "none":
            return ModerationResult(blocked=False)
        for pattern in self._patterns:
            if pattern.search(content):
                logger.info("[Moderation] Blocked content matching %s", pattern.pattern)
                return ModerationResult(blocked=True, reason="blocked_pattern", score=1.0)
        return ModerationResult(blocked=False)


_REVIEW_COLUMNS = [
    "id", "message_id", "room_id", "reason", "status", "created_at",
    "content", "sender_email", "resolved_by", "resolved_at",
]

_REVIEW_SELECT = """
    SELECT q.id, q.message_id, m.room_id, q.reason, q.status, q.created_at,
           m.content, u.email, q.resolved_by, q.resolved_at
    FROM moderation_queue q
    JOIN messages m ON m.id = q.message_id
    LEFT JOIN users u ON u.id = m.sender_id
"""


class ModerationQueue:
    """Blocked messages held for an admin decision (``moderation_queue``)."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def queue_for_review(self, message_id: str, reason: Optional[str]) -> None:
        """Queue a message once; queueing it again is a no-op."""
        self._db.execute(
            """
            INSERT INTO moderation_queue (id, message_id, reason, status, created_at)
            VALUES (?, ?, ?, 'pending', ?)
            ON CONFLICT (message_id) DO NOTHING
            """,
            [str(uuid.uuid4()), message_id, reason, utc_now_naive()],
        )
        logger.info("[Moderation] Message %s queued for review (%s)", message_id, reason)

    def get(self, item_id: str) -> Optional[ReviewItem]:
        row = self._db.fetchone(_REVIEW_SELECT + " WHERE q.id = ?", [item_id])
        return ReviewItem(**dict(zip(_REVIEW_COLUMNS, row))) if row else None

    def list_items(self, status: str = "pending", limit: int = 200) -> List[ReviewItem]:
        """Oldest first, so the queue is worked in arrival order."""
        rows = self._db.fetchall(
            _REVIEW_SELECT + " WHERE q.status = ? ORDER BY q.created_at, q.id LIMIT ?",
            [status, limit],
        )
        return [ReviewItem(**dict(zip(_REVIEW_COLUMNS, row))) for row in rows]

    def resolve(self, item_id: str, status: str, resolved_by: str) -> bool:
        """Close a pending item. Returns False if it was not pending."""
        row = self._db.fetchone(
            """
            UPDATE moderation_queue
            SET status = ?, resolved_by = ?, resolved_at = ?
            WHERE id = ? AND status = 'pending'
            RETURNING id
            """,
            [status, resolved_by, utc_now_naive(), item_id],
        )
        return row is not None

    def pending_count(self) -> int:
        row = self._db.fetchone("SELECT COUNT(*) FROM moderation_queue WHERE status = 'pending'")
        return int(row[0])
