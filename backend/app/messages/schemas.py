"""Pydantic schemas for messages.

``MessageRecord`` is the single canonical shape of a persisted message; it
is serialized with camelCase keys both for HTTP responses and for the
``new_message`` real-time event.
"""
from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class MessageStatus(str, Enum):
    """Delivery state of a message. Only ever moves forward.

    Attributes:
        SENT: Persisted, not yet acknowledged by any recipient.
        DELIVERED: A recipient's client confirmed receipt.
        READ: A recipient marked the room as read (terminal).
    """
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


AttachmentType = Literal["image", "file"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendMessageRequest(_CamelModel):
    """Request body for ``POST /rooms/{room_id}/messages``."""
    content: Optional[str] = Field(default=None, max_length=4000)
    attachment_url: Optional[str] = None
    attachment_type: Optional[AttachmentType] = None
    ttl: Optional[int] = Field(default=None, ge=0, description="Seconds until the message expires")
    reply_to_id: Optional[str] = None

    @model_validator(mode="after")
    def _strip_content(self) -> "SendMessageRequest":
        if self.content is not None:
            self.content = self.content.strip() or None
        return self


class MessageRecord(_CamelModel):
    """A persisted message as seen by clients."""
    id: str
    sender_id: str
    room_id: str
    content: Optional[str] = None
    attachment_url: Optional[str] = None
    attachment_type: Optional[AttachmentType] = None
    status: MessageStatus = MessageStatus.SENT
    reply_to_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: datetime
    sender_name: Optional[str] = None


ReviewStatus = Literal["pending", "approved", "rejected"]


class ReviewItem(_CamelModel):
    """A held message waiting in (or resolved from) the moderation queue."""
    id: str
    message_id: str
    room_id: str
    reason: Optional[str] = None
    status: ReviewStatus = "pending"
    created_at: datetime
    content: Optional[str] = None
    sender_email: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
