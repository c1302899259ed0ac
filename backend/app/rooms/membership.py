"""Room membership index: the read path used to authorize real-time joins.

Results are a snapshot at call time. Sessions that are already open are not
told about membership changes; a removed member keeps receiving room
broadcasts until they reconnect.
"""
from datetime import datetime
from typing import List, Optional

from app.storage import Database, utc_now_naive


class RoomMembershipIndex:
    """Queries over ``room_members``."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def active_room_ids_for(self, user_id: str) -> List[str]:
        rows = self._db.fetchall(
            """
            SELECT room_id FROM room_members
            WHERE user_id = ? AND is_active = TRUE
            ORDER BY joined_at, room_id
            """,
            [user_id],
        )
        return [row[0] for row in rows]

    def is_active_member(self, user_id: str, room_id: str) -> bool:
        row = self._db.fetchone(
            """
            SELECT 1 FROM room_members
            WHERE user_id = ? AND room_id = ? AND is_active = TRUE
            """,
            [user_id, room_id],
        )
        return row is not None

    def member_role(self, user_id: str, room_id: str) -> Optional[str]:
        """Role of an active member, or None."""
        row = self._db.fetchone(
            """
            SELECT role FROM room_members
            WHERE user_id = ? AND room_id = ? AND is_active = TRUE
            """,
            [user_id, room_id],
        )
        return row[0] if row else None

    def last_read_at(self, room_id: str, user_id: str) -> Optional[datetime]:
        row = self._db.fetchone(
            "SELECT last_read_at FROM room_members WHERE room_id = ? AND user_id = ?",
            [room_id, user_id],
        )
        return row[0] if row else None

    def mark_read(self, room_id: str, user_id: str,
                  at: Optional[datetime] = None) -> datetime:
        """Move the reader's ``last_read_at`` marker to ``at`` (default now)."""
        at = at or utc_now_naive()
        self._db.execute(
            "UPDATE room_members SET last_read_at = ? WHERE room_id = ? AND user_id = ?",
            [at, room_id, user_id],
        )
        return at
