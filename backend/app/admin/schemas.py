"""Pydantic schemas for the admin endpoints."""
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

ReviewAction = Literal["approve", "reject", "delete"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BanRequest(_CamelModel):
    banned: bool


class ResolveReviewRequest(_CamelModel):
    action: ReviewAction


class AdminStats(_CamelModel):
    total_users:        int
    total_messages:     int
    total_rooms:        int
    pending_moderation: int
    active_connections: int
