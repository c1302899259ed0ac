"""Pydantic schemas for user profiles."""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

PresenceStatus = Literal["online", "offline"]


class UserProfile(BaseModel):
    """Profile as returned by ``GET /users/{id}`` (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    email: str
    display_name: str = ""
    role: str = "user"
    status: PresenceStatus = Field("offline", description="Last-known presence status")
    last_seen: Optional[datetime] = None
    preferred_lang: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime


class AdminUserView(UserProfile):
    """Profile plus moderation flags, for the admin user list."""
    is_banned: bool = False


class UpdateProfileRequest(BaseModel):
    """Body of ``PATCH /users/me``. Omitted fields are left unchanged.

    ``status`` is not editable: it always mirrors the user's live
    connections.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    display_name:   Optional[str] = Field(None, min_length=1, max_length=50)
    bio:            Optional[str] = Field(None, max_length=200)
    avatar_url:     Optional[str] = Field(None, max_length=500)
    preferred_lang: Optional[str] = Field(None, min_length=2, max_length=10)
