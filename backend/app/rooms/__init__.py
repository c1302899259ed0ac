"""Rooms module: conversations, membership rows and the membership index."""

from .membership import RoomMembershipIndex
from .service import RoomService

__all__ = ["RoomMembershipIndex", "RoomService"]
