"""Message endpoints: the external send path and read receipts.

Endpoints:
    GET    /rooms/{room_id}/messages: Page of messages, oldest first
    POST   /rooms/{room_id}/messages: Send; emits ``new_message`` to the room
    POST   /rooms/{room_id}/read: Mark the room read; emits ``messages_read``
    DELETE /messages/{message_id}: Soft-delete one's own message
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.auth.dependencies import get_current_user
from app.auth.service import AuthenticatedUser
from app.realtime.hub import RealtimeHub

from .schemas import SendMessageRequest
from .service import MessageService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messages"])


def get_message_service(request: Request) -> MessageService:
    return request.app.state.messages


def get_hub(request: Request) -> RealtimeHub:
    return request.app.state.hub


@router.get("/rooms/{room_id}/messages")
async def list_messages(
    room_id: str,
    before: Optional[datetime] = Query(default=None, description="Only messages created before this instant"),
    limit: Optional[int] = Query(default=None, ge=1),
    user: AuthenticatedUser = Depends(get_current_user),
    messages: MessageService = Depends(get_message_service),
) -> JSONResponse:
    page = messages.list_messages(room_id, user.user_id, before=before, limit=limit)
    return JSONResponse([m.model_dump(mode="json", by_alias=True) for m in page])


@router.post("/rooms/{room_id}/messages", status_code=201)
async def send_message(
    room_id: str,
    body: SendMessageRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    messages: MessageService = Depends(get_message_service),
    hub: RealtimeHub = Depends(get_hub),
) -> JSONResponse:
    record = await messages.send_message(user.user_id, room_id, body)
    delivered = await hub.emit_new_message(record)
    logger.debug("[Messages] new_message %s reached %d connections", record.id, delivered)
    return JSONResponse(record.model_dump(mode="json", by_alias=True), status_code=201)


@router.post("/rooms/{room_id}/read")
async def mark_room_read(
    room_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    hub: RealtimeHub = Depends(get_hub),
) -> JSONResponse:
    updated = await hub.delivery.mark_room_read(room_id, user.user_id)
    return JSONResponse({"roomId": room_id, "updated": updated})


@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    messages: MessageService = Depends(get_message_service),
) -> JSONResponse:
    messages.delete_message(message_id, user.user_id)
    return JSONResponse({"message": "Message deleted"})
