"""User profile rows, including the last-known presence status."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.storage import Database, utc_now_naive

from .schemas import AdminUserView, UserProfile

logger = logging.getLogger(__name__)

_COLUMNS = [
    "id", "email", "display_name", "role", "status", "last_seen",
    "preferred_lang", "bio", "avatar_url", "created_at",
]

_EDITABLE = ("display_name", "bio", "avatar_url", "preferred_lang")


class UserRepository:
    """Reads and writes the ``users`` table.

    Registration and password handling live outside this service; rows are
    created here only by seeding code and tests.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def create_user(
        self,
        user_id: str,
        email: str,
        display_name: str = "",
        role: str = "user",
        preferred_lang: Optional[str] = None,
    ) -> UserProfile:
        self._db.execute(
            """
            INSERT INTO users (id, email, display_name, role, status, preferred_lang, created_at)
            VALUES (?, ?, ?, ?, 'offline', ?, ?)
            """,
            [user_id, email, display_name or email.split("@")[0], role,
             preferred_lang, utc_now_naive()],
        )
        return self.get_user(user_id)

    def get_user(self, user_id: str) -> Optional[UserProfile]:
        row = self._db.fetchone(
            f"SELECT {', '.join(_COLUMNS)} FROM users WHERE id = ?", [user_id]
        )
        if row is None:
            return None
        return UserProfile(**dict(zip(_COLUMNS, row)))

    def set_status(self, user_id: str, status: str) -> None:
        """Persist the last-known presence status (idempotent)."""
        self._db.execute(
            "UPDATE users SET status = ? WHERE id = ?", [status, user_id]
        )
        logger.debug("[Users] status %s -> %s", user_id, status)

    def touch_last_seen(self, user_id: str, at: Optional[datetime] = None) -> None:
        self._db.execute(
            "UPDATE users SET last_seen = ? WHERE id = ?",
            [at or utc_now_naive(), user_id],
        )

    def update_profile(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserProfile]:
        """Apply the editable profile fields in ``changes``; others are ignored."""
        fields = {k: v for k, v in changes.items() if k in _EDITABLE}
        if fields:
            assignments = ", ".join(f"{column} = ?" for column in fields)
            self._db.execute(
                f"UPDATE users SET {assignments} WHERE id = ?",
                [*fields.values(), user_id],
            )
            logger.info("[Users] %s updated %s", user_id, ", ".join(sorted(fields)))
        return self.get_user(user_id)

    def search(self, query: str, limit: int = 20) -> List[UserProfile]:
        """Case-insensitive substring match on display name or email.

        Banned users are left out.
        """
        pattern = f"%{query}%"
        rows = self._db.fetchall(
            f"""
            SELECT {', '.join(_COLUMNS)} FROM users
            WHERE is_banned = FALSE
              AND (display_name ILIKE ? OR email ILIKE ?)
            ORDER BY display_name, id
            LIMIT ?
            """,
            [pattern, pattern, limit],
        )
        return [UserProfile(**dict(zip(_COLUMNS, row))) for row in rows]

    # -----------------------------------------------------------------------
    # Moderation flags
    # -----------------------------------------------------------------------

    def is_banned(self, user_id: str) -> bool:
        """False for unknown users; tokens are verified separately."""
        row = self._db.fetchone("SELECT is_banned FROM users WHERE id = ?", [user_id])
        return bool(row and row[0])

    def set_banned(self, user_id: str, banned: bool) -> bool:
        """Returns False when the user does not exist."""
        row = self._db.fetchone(
            "UPDATE users SET is_banned = ? WHERE id = ? RETURNING id", [banned, user_id]
        )
        if row is None:
            return False
        logger.info("[Users] %s %s", user_id, "banned" if banned else "unbanned")
        return True

    def list_for_admin(self, limit: int = 200) -> List[AdminUserView]:
        columns = _COLUMNS + ["is_banned"]
        rows = self._db.fetchall(
            f"SELECT {', '.join(columns)} FROM users ORDER BY created_at DESC, id LIMIT ?",
            [limit],
        )
        return [AdminUserView(**dict(zip(columns, row))) for row in rows]
