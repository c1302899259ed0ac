"""FastAPI dependency that authenticates HTTP requests."""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.errors import AuthenticationError, AuthorizationError

from .service import ACCOUNT_BANNED, AuthenticatedUser, TokenService

_bearer = HTTPBearer(auto_error=False)


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    tokens: TokenService = Depends(get_token_service),
) -> AuthenticatedUser:
    """Resolve the caller from ``Authorization: Bearer <token>``.

    Raises ``AuthenticationError`` (401) via the app-level handler, also for
    a valid token whose account has been banned.
    """
    token = credentials.credentials if credentials else None
    user = tokens.verify(token)
    if request.app.state.users.is_banned(user.user_id):
        raise AuthenticationError(ACCOUNT_BANNED)
    return user


async def require_admin(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """As ``get_current_user``, but only for accounts stored with role ``admin``."""
    profile = request.app.state.users.get_user(user.user_id)
    if profile is None or profile.role != "admin":
        raise AuthorizationError("Admin access required")
    return user
