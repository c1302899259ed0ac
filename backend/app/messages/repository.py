"""Message rows and their status transitions.

Status updates are conditional so that concurrent or repeated receipts can
never move a message backwards (``read`` is never overwritten by
``delivered``).
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from app.errors import NotFoundError
from app.storage import Database, utc_now_naive

from .schemas import MessageRecord, MessageStatus

logger = logging.getLogger(__name__)

_SELECT = """
    SELECT m.id, m.sender_id, m.room_id, m.content, m.attachment_url,
           m.attachment_type, m.status, m.reply_to_id, m.expires_at,
           m.created_at, u.display_name
    FROM messages m
    LEFT JOIN users u ON u.id = m.sender_id
"""

_COLUMNS = [
    "id", "sender_id", "room_id", "content", "attachment_url",
    "attachment_type", "status", "reply_to_id", "expires_at",
    "created_at", "sender_name",
]


def _to_record(row: tuple) -> MessageRecord:
    return MessageRecord(**dict(zip(_COLUMNS, row)))


class MessageRepository:
    """Reads and writes the ``messages`` and ``message_translations`` tables."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def insert(
        self,
        message_id: str,
        sender_id: str,
        room_id: str,
        content: Optional[str],
        attachment_url: Optional[str] = None,
        attachment_type: Optional[str] = None,
        reply_to_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        hidden: bool = False,
    ) -> MessageRecord:
        """Persist a message with status ``sent``.

        A ``hidden`` message is stored soft-deleted (held for moderation
        review) and does not touch the room's ``last_message_at``.
        """
        now = utc_now_naive()
        with self._db.transaction() as tx:
            tx.execute(
                """
                INSERT INTO messages
                  (id, sender_id, room_id, content, attachment_url, attachment_type,
                   status, reply_to_id, expires_at, is_deleted, created_at)
                VALUES (?, ?, ?, ?, ?, ?, 'sent', ?, ?, ?, ?)
                """,
                [message_id, sender_id, room_id, content, attachment_url,
                 attachment_type, reply_to_id, expires_at, hidden, now],
            )
            if not hidden:
                tx.execute("UPDATE rooms SET last_message_at = ? WHERE id = ?", [now, room_id])
        return self.get(message_id)

    def get(self, message_id: str) -> Optional[MessageRecord]:
        row = self._db.fetchone(_SELECT + " WHERE m.id = ?", [message_id])
        return _to_record(row) if row else None

    def sender_of(self, message_id: str) -> Optional[str]:
        row = self._db.fetchone("SELECT sender_id FROM messages WHERE id = ?", [message_id])
        return row[0] if row else None

    def list_page(self, room_id: str, before: Optional[datetime],
                  limit: int) -> List[MessageRecord]:
        """Newest ``limit`` visible messages older than ``before``, oldest first."""
        params: list = [room_id, utc_now_naive()]
        cursor = ""
        if before is not None:
            cursor = "AND m.created_at < ?"
            params.append(before)
        params.append(limit)
        rows = self._db.fetchall(
            _SELECT + f"""
            WHERE m.room_id = ?
              AND m.is_deleted = FALSE
              AND (m.expires_at IS NULL OR m.expires_at > ?)
              {cursor}
            ORDER BY m.created_at DESC, m.id DESC
            LIMIT ?
            """,
            params,
        )
        return [_to_record(r) for r in reversed(rows)]

    def soft_delete(self, message_id: str) -> None:
        self._db.execute("UPDATE messages SET is_deleted = TRUE WHERE id = ?", [message_id])

    def restore(self, message_id: str) -> Optional[MessageRecord]:
        """Make a held message visible again."""
        self._db.execute("UPDATE messages SET is_deleted = FALSE WHERE id = ?", [message_id])
        return self.get(message_id)

    # -----------------------------------------------------------------------
    # Status transitions
    # -----------------------------------------------------------------------

    def mark_delivered(self, message_id: str, room_id: str) -> bool:
        """``sent -> delivered``. Returns False when the message was already
        delivered or read.

        Raises:
            NotFoundError: no message with that id exists in the room.
        """
        changed = self._db.fetchall(
            """
            UPDATE messages SET status = ?
            WHERE id = ? AND room_id = ? AND status = ?
            RETURNING id
            """,
            [MessageStatus.DELIVERED.value, message_id, room_id, MessageStatus.SENT.value],
        )
        if changed:
            return True
        if self._db.fetchone(
            "SELECT 1 FROM messages WHERE id = ? AND room_id = ?", [message_id, room_id]
        ) is None:
            raise NotFoundError(f"Message {message_id} not found in room {room_id}")
        return False

    def mark_room_read(self, room_id: str, reader_id: str) -> int:
        """Mark every message in the room not sent by ``reader_id`` as read.

        Returns the number of messages that changed.
        """
        changed = self._db.fetchall(
            """
            UPDATE messages SET status = ?
            WHERE room_id = ? AND sender_id != ? AND status != ?
            RETURNING id
            """,
            [MessageStatus.READ.value, room_id, reader_id, MessageStatus.READ.value],
        )
        return len(changed)

    # -----------------------------------------------------------------------
    # Translations
    # -----------------------------------------------------------------------

    def recipient_languages(self, room_id: str, sender_id: str) -> List[Tuple[str, str]]:
        """(user_id, preferred_lang) for active members other than the sender."""
        rows = self._db.fetchall(
            """
            SELECT rm.user_id, u.preferred_lang
            FROM room_members rm
            JOIN users u ON u.id = rm.user_id
            WHERE rm.room_id = ? AND rm.user_id != ? AND rm.is_active = TRUE
              AND u.preferred_lang IS NOT NULL
            """,
            [room_id, sender_id],
        )
        return [(r[0], r[1]) for r in rows]

    def save_translation(self, message_id: str, language: str, text: str,
                         confidence: float) -> None:
        self._db.execute(
            """
            INSERT INTO message_translations (message_id, language, translated_content, confidence)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (message_id, language) DO NOTHING
            """,
            [message_id, language, text, confidence],
        )

    def translations_for(self, message_id: str) -> List[Tuple[str, str]]:
        rows = self._db.fetchall(
            "SELECT language, translated_content FROM message_translations WHERE message_id = ? ORDER BY language",
            [message_id],
        )
        return [(r[0], r[1]) for r in rows]
