"""Room (conversation) management endpoints.

Endpoints:
    GET    /rooms: Rooms of the caller with unread counts
    POST   /rooms: Create a direct or group room
    GET    /rooms/{room_id}: Room details and active members
    POST   /rooms/{room_id}/members: Add a member (admins only)
    DELETE /rooms/{room_id}/members/{user_id}: Remove a member

Membership changes here are not pushed to open WebSocket sessions; a removed
member keeps receiving broadcasts for the room until they reconnect.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.auth.dependencies import get_current_user
from app.auth.service import AuthenticatedUser

from .schemas import MemberAdd, RoomCreate
from .service import RoomService

router = APIRouter(prefix="/rooms", tags=["rooms"])


def get_room_service(request: Request) -> RoomService:
    return request.app.state.rooms


@router.get("")
async def list_rooms(
    user: AuthenticatedUser = Depends(get_current_user),
    rooms: RoomService = Depends(get_room_service),
) -> JSONResponse:
    summaries = rooms.list_rooms_for_user(user.user_id)
    return JSONResponse([s.model_dump(mode="json", by_alias=True) for s in summaries])


@router.post("", status_code=201)
async def create_room(
    body: RoomCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    rooms: RoomService = Depends(get_room_service),
) -> JSONResponse:
    room = rooms.create_room(user.user_id, body.type, body.member_ids, body.name)
    return JSONResponse(room.model_dump(mode="json", by_alias=True), status_code=201)


@router.get("/{room_id}")
async def get_room(
    room_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    rooms: RoomService = Depends(get_room_service),
) -> JSONResponse:
    room = rooms.get_room_for_user(room_id, user.user_id)
    return JSONResponse(room.model_dump(mode="json", by_alias=True))


@router.post("/{room_id}/members")
async def add_member(
    room_id: str,
    body: MemberAdd,
    user: AuthenticatedUser = Depends(get_current_user),
    rooms: RoomService = Depends(get_room_service),
) -> JSONResponse:
    rooms.add_member(room_id, body.user_id, user.user_id)
    return JSONResponse({"message": "Member added"})


@router.delete("/{room_id}/members/{member_id}")
async def remove_member(
    room_id: str,
    member_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    rooms: RoomService = Depends(get_room_service),
) -> JSONResponse:
    rooms.remove_member(room_id, member_id, user.user_id)
    return JSONResponse({"message": "Member removed"})
