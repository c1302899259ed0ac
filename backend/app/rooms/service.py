"""RoomService: direct and group conversations and their member lists."""
import logging
import uuid
from typing import List, Optional

from app.errors import AuthorizationError, NotFoundError, ValidationError
from app.storage import Database, utc_now_naive

from .membership import RoomMembershipIndex
from .schemas import Room, RoomMember, RoomSummary, RoomType

logger = logging.getLogger(__name__)

_EPOCH = "1970-01-01 00:00:00"


class RoomService:
    """Creates rooms and manages membership rows.

    Membership changes made here are not pushed to open real-time sessions.
    """

    def __init__(self, db: Database, membership: RoomMembershipIndex) -> None:
        self._db = db
        self._membership = membership

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def list_rooms_for_user(self, user_id: str) -> List[RoomSummary]:
        """Rooms the user is active in, most recently active first.

        ``unread_count`` counts messages newer than the user's
        ``last_read_at`` that the user did not send.
        """
        rows = self._db.fetchall(
            f"""
            SELECT r.id, r.type, r.name, r.created_at, r.last_message_at,
                   (SELECT content FROM messages m
                     WHERE m.room_id = r.id AND m.is_deleted = FALSE
                     ORDER BY m.created_at DESC LIMIT 1) AS last_message_content,
                   (SELECT COUNT(*) FROM messages m
                     WHERE m.room_id = r.id
                       AND m.is_deleted = FALSE
                       AND m.sender_id != rm.user_id
                       AND m.created_at > COALESCE(rm.last_read_at, TIMESTAMP '{_EPOCH}')
                   ) AS unread_count
            FROM rooms r
            JOIN room_members rm ON rm.room_id = r.id
            WHERE rm.user_id = ? AND rm.is_active = TRUE
            ORDER BY COALESCE(r.last_message_at, r.created_at) DESC
            """,
            [user_id],
        )
        summaries = []
        for room_id, type_, name, created_at, last_message_at, last_content, unread in rows:
            summary = RoomSummary(
                id=room_id,
                type=type_,
                name=name,
                created_at=created_at,
                last_message_at=last_message_at,
                last_message_content=last_content,
                unread_count=int(unread),
            )
            if type_ == "direct":
                # Direct rooms are named after the other participant.
                other = next((m for m in self._members(room_id) if m.id != user_id), None)
                if other is not None:
                    summary.name = other.display_name
                    summary.other_user = other
            summaries.append(summary)
        return summaries

    def get_room(self, room_id: str) -> Room:
        row = self._db.fetchone(
            "SELECT id, type, name, created_at, last_message_at FROM rooms WHERE id = ?",
            [room_id],
        )
        if row is None:
            raise NotFoundError("Room not found")
        return Room(
            id=row[0],
            type=row[1],
            name=row[2],
            created_at=row[3],
            last_message_at=row[4],
            members=self._members(room_id),
        )

    def get_room_for_user(self, room_id: str, user_id: str) -> Room:
        if not self._membership.is_active_member(user_id, room_id):
            raise NotFoundError("Room not found or access denied")
        return self.get_room(room_id)

    def _members(self, room_id: str) -> List[RoomMember]:
        rows = self._db.fetchall(
            """
            SELECT u.id, u.display_name, u.status, rm.role
            FROM users u
            JOIN room_members rm ON rm.user_id = u.id
            WHERE rm.room_id = ? AND rm.is_active = TRUE
            ORDER BY rm.joined_at, u.id
            """,
            [room_id],
        )
        return [
            RoomMember(id=r[0], display_name=r[1], status=r[2], role=r[3])
            for r in rows
        ]

    def _find_direct_room(self, user_a: str, user_b: str) -> Optional[str]:
        row = self._db.fetchone(
            """
            SELECT r.id FROM rooms r
            JOIN room_members m1 ON m1.room_id = r.id AND m1.user_id = ?
            JOIN room_members m2 ON m2.room_id = r.id AND m2.user_id = ?
            WHERE r.type = 'direct'
            LIMIT 1
            """,
            [user_a, user_b],
        )
        return row[0] if row else None

    # -----------------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------------

    def create_room(
        self,
        creator_id: str,
        type_: RoomType,
        member_ids: List[str],
        name: Optional[str] = None,
    ) -> Room:
        """Create a room; the creator becomes its admin.

        A direct room between the same two users is reused rather than
        duplicated.
        """
        if type_ == "direct":
            others = [m for m in member_ids if m != creator_id]
            if not others:
                raise ValidationError("A direct room needs another participant")
            other_id = others[0]
            existing = self._find_direct_room(creator_id, other_id)
            if existing:
                return self.get_room(existing)
            members = [creator_id, other_id]
        else:
            members = list(dict.fromkeys([creator_id, *member_ids]))

        room_id = str(uuid.uuid4())
        now = utc_now_naive()
        with self._db.transaction() as tx:
            tx.execute(
                "INSERT INTO rooms (id, type, name, created_by, created_at) VALUES (?, ?, ?, ?, ?)",
                [room_id, type_, name, creator_id, now],
            )
            for member_id in members:
                tx.execute(
                    """
                    INSERT INTO room_members (room_id, user_id, role, is_active, joined_at)
                    VALUES (?, ?, ?, TRUE, ?)
                    """,
                    [room_id, member_id, "admin" if member_id == creator_id else "member", now],
                )
        logger.info("[Rooms] Created %s room %s with %d members", type_, room_id, len(members))
        return self.get_room(room_id)

    def add_member(self, room_id: str, user_id: str, requester_id: str) -> None:
        """Add (or re-activate) a member. Only room admins may do this."""
        if self._membership.member_role(requester_id, room_id) != "admin":
            raise AuthorizationError("Only admins can add members")
        self._db.execute(
            """
            INSERT INTO room_members (room_id, user_id, role, is_active, joined_at)
            VALUES (?, ?, 'member', TRUE, ?)
            ON CONFLICT (room_id, user_id) DO UPDATE SET is_active = TRUE
            """,
            [room_id, user_id, utc_now_naive()],
        )

    def remove_member(self, room_id: str, user_id: str, requester_id: str) -> None:
        """Deactivate a membership. Admins may remove anyone; members only themselves."""
        role = self._membership.member_role(requester_id, room_id)
        if role is None or (role != "admin" and requester_id != user_id):
            raise AuthorizationError("Permission denied")
        self._db.execute(
            "UPDATE room_members SET is_active = FALSE WHERE room_id = ? AND user_id = ?",
            [room_id, user_id],
        )
        logger.info("[Rooms] %s removed from room %s by %s", user_id, room_id, requester_id)
