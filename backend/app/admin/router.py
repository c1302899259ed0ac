"""Admin endpoints. Every route requires a stored ``admin`` role.

Endpoints:
    GET   /admin/users: Most recent users with their ban flag
    PATCH /admin/users/{user_id}/ban: Ban or unban; banning disconnects
    GET   /admin/moderation?status=: Review queue (default ``pending``)
    PATCH /admin/moderation/{item_id}: approve, reject or delete
    GET   /admin/stats: Counters and open connections
"""
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.auth.dependencies import require_admin
from app.auth.service import AuthenticatedUser

from .schemas import BanRequest, ResolveReviewRequest
from .service import AdminService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def get_admin_service(request: Request) -> AdminService:
    return request.app.state.admin


@router.get("/users")
async def list_users(
    _: AuthenticatedUser = Depends(require_admin),
    admin: AdminService = Depends(get_admin_service),
) -> JSONResponse:
    return JSONResponse([u.model_dump(mode="json", by_alias=True) for u in admin.list_users()])


@router.patch("/users/{user_id}/ban")
async def set_banned(
    user_id: str,
    body: BanRequest,
    _: AuthenticatedUser = Depends(require_admin),
    admin: AdminService = Depends(get_admin_service),
) -> JSONResponse:
    profile = await admin.set_banned(user_id, body.banned)
    return JSONResponse(profile.model_dump(mode="json", by_alias=True))


@router.get("/moderation")
async def review_queue(
    status: str = Query(default="pending", pattern="^(pending|approved|rejected)$"),
    _: AuthenticatedUser = Depends(require_admin),
    admin: AdminService = Depends(get_admin_service),
) -> JSONResponse:
    items = admin.review_queue(status)
    return JSONResponse([i.model_dump(mode="json", by_alias=True) for i in items])


@router.patch("/moderation/{item_id}")
async def resolve_review(
    item_id: str,
    body: ResolveReviewRequest,
    user: AuthenticatedUser = Depends(require_admin),
    admin: AdminService = Depends(get_admin_service),
) -> JSONResponse:
    item = await admin.resolve_review(item_id, body.action, user.user_id)
    return JSONResponse(item.model_dump(mode="json", by_alias=True))


@router.get("/stats")
async def stats(
    _: AuthenticatedUser = Depends(require_admin),
    admin: AdminService = Depends(get_admin_service),
) -> JSONResponse:
    return JSONResponse(admin.stats().model_dump(by_alias=True))
