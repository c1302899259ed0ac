"""Pydantic schemas for the rooms module."""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RoomType = Literal["direct", "group"]
MemberRole = Literal["admin", "member"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RoomCreate(_CamelModel):
    """Request body for ``POST /rooms``."""
    type: RoomType
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    member_ids: List[str] = Field(..., min_length=1)


class MemberAdd(_CamelModel):
    user_id: str = Field(..., min_length=1)


class RoomMember(_CamelModel):
    id: str
    display_name: str = ""
    status: str = "offline"
    role: MemberRole = "member"


class Room(_CamelModel):
    id: str
    type: RoomType
    name: Optional[str] = None
    created_at: datetime
    last_message_at: Optional[datetime] = None
    members: List[RoomMember] = Field(default_factory=list)


class RoomSummary(_CamelModel):
    """One entry of ``GET /rooms``."""
    id: str
    type: RoomType
    name: Optional[str] = None
    created_at: datetime
    last_message_at: Optional[datetime] = None
    last_message_content: Optional[str] = None
    unread_count: int = 0
    other_user: Optional[RoomMember] = None
