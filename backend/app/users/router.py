"""User profile endpoints.

Endpoints:
    GET   /users/me: The authenticated caller's profile
    PATCH /users/me: Edit display name, bio, avatar or preferred language
    GET   /users/search?q=: Find users by display name or email
    GET   /users/{user_id}: Any user's profile, including last-known status
"""
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.auth.dependencies import get_current_user
from app.auth.service import AuthenticatedUser
from app.errors import NotFoundError

from .repository import UserRepository
from .schemas import UpdateProfileRequest

router = APIRouter(prefix="/users", tags=["users"])

SEARCH_LIMIT = 20


def get_user_repository(request: Request) -> UserRepository:
    return request.app.state.users


def _profile_response(users: UserRepository, user_id: str) -> JSONResponse:
    profile = users.get_user(user_id)
    if profile is None:
        raise NotFoundError("User not found")
    return JSONResponse(profile.model_dump(mode="json", by_alias=True))


@router.get("/me")
async def get_me(
    user: AuthenticatedUser = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
) -> JSONResponse:
    return _profile_response(users, user.user_id)


@router.patch("/me")
async def update_me(
    body: UpdateProfileRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
) -> JSONResponse:
    users.update_profile(user.user_id, body.model_dump(exclude_none=True))
    return _profile_response(users, user.user_id)


@router.get("/search")
async def search_users(
    q: str = Query(..., min_length=1, max_length=100),
    _: AuthenticatedUser = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
) -> JSONResponse:
    results = users.search(q.strip(), limit=SEARCH_LIMIT)
    return JSONResponse([p.model_dump(mode="json", by_alias=True) for p in results])


@router.get("/{user_id}")
async def get_profile(
    user_id: str,
    _: AuthenticatedUser = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
) -> JSONResponse:
    """Fetch a profile. ``status`` is the stored last-known value, not a
    live lookup in the presence store."""
    return _profile_response(users, user_id)
