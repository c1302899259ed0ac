"""Real-time event vocabulary and payload contracts.

Every frame in either direction is a JSON object::

    {"event": "<name>", "data": <payload>}

Payload keys are camelCase on the wire. Internally payloads are pydantic
models with snake_case fields; ``encode`` is the only place they are turned
into wire dicts.

Inbound (client -> server):
    - join_room: ``"<roomId>"``
    - typing_start / typing_stop: ``{roomId}``
    - message_delivered: ``{messageId, roomId}``
    - messages_read: ``{roomId}``

Outbound (server -> client):
    - connected: ``{userId, connectionId, roomIds}`` (to the new connection only)
    - new_message: full message record
    - user_joined: ``{userId, roomId}``
    - typing_start / typing_stop: ``{userId, roomId}``
    - message_status_updated: ``{messageId, status: "delivered"}``
    - messages_read: ``{roomId, userId}``
    - presence_update: ``{userId, status: "online" | "offline"}``
    - error: ``{error}`` (malformed frames only; never for authorization)
"""
import json
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from app.errors import ValidationError


class InboundEvent(str, Enum):
    JOIN_ROOM = "join_room"
    TYPING_START = "typing_start"
    TYPING_STOP = "typing_stop"
    MESSAGE_DELIVERED = "message_delivered"
    MESSAGES_READ = "messages_read"


class OutboundEvent(str, Enum):
    CONNECTED = "connected"
    NEW_MESSAGE = "new_message"
    USER_JOINED = "user_joined"
    TYPING_START = "typing_start"
    TYPING_STOP = "typing_stop"
    MESSAGE_STATUS_UPDATED = "message_status_updated"
    MESSAGES_READ = "messages_read"
    PRESENCE_UPDATE = "presence_update"
    ERROR = "error"


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Inbound payloads
# =============================================================================


class RoomPayload(_Payload):
    room_id: str = Field(..., min_length=1)


class MessageDeliveredPayload(_Payload):
    message_id: str = Field(..., min_length=1)
    room_id: str = Field(..., min_length=1)


class Envelope(BaseModel):
    event: str = Field(..., min_length=1)
    data: Any = None


# =============================================================================
# Outbound payloads
# =============================================================================


class ConnectedPayload(_Payload):
    user_id: str
    connection_id: str
    room_ids: List[str]


class UserRoomPayload(_Payload):
    """Shared by ``user_joined``, ``typing_*`` and ``messages_read``."""
    user_id: str
    room_id: str


class MessageStatusPayload(_Payload):
    message_id: str
    status: Literal["delivered"] = "delivered"


class PresencePayload(_Payload):
    user_id: str
    status: Literal["online", "offline"]


class ErrorPayload(_Payload):
    error: str


InboundPayload = Union[RoomPayload, MessageDeliveredPayload]


def encode(event: OutboundEvent, payload: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    """Build the wire frame for an outbound event."""
    if isinstance(payload, BaseModel):
        data = payload.model_dump(mode="json", by_alias=True)
    else:
        data = payload
    return {"event": event.value, "data": data}


def decode_frame(text: Optional[str]) -> Any:
    """Parse a raw text frame as JSON. ``None`` stands for a binary frame.

    Raises:
        ValidationError: the frame is binary or not valid JSON.
    """
    if text is None:
        raise ValidationError("Invalid frame: expected text")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValidationError("Invalid frame: not JSON") from exc


def parse_inbound(frame: Any) -> Tuple[InboundEvent, InboundPayload]:
    """Validate a client frame.

    Raises:
        ValidationError: unknown event name or malformed payload.
    """
    try:
        envelope = Envelope.model_validate(frame)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid frame: expected {event, data}") from exc

    try:
        event = InboundEvent(envelope.event)
    except ValueError as exc:
        raise ValidationError(f"Unknown event: {envelope.event}") from exc

    data = envelope.data
    try:
        if event is InboundEvent.JOIN_ROOM:
            # join_room carries the bare room id
            if isinstance(data, str):
                data = {"roomId": data}
            return event, RoomPayload.model_validate(data)
        if event is InboundEvent.MESSAGE_DELIVERED:
            return event, MessageDeliveredPayload.model_validate(data)
        return event, RoomPayload.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid payload for {event.value}") from exc
