"""Application error taxonomy.

Every error carries the HTTP status it maps to so routers can let it
propagate to the exception handler registered in ``app.main``. Inside a
WebSocket session the hub logs and drops these instead of surfacing them.
"""
from typing import Optional


class AppError(Exception):
    """Base class for expected, client-attributable failures."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthenticationError(AppError):
    """Missing, malformed, expired or badly signed credential."""

    status_code = 401


class AuthorizationError(AppError):
    """The user is not allowed to act on the target room or message."""

    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ValidationError(AppError):
    status_code = 400


class TransientStoreError(AppError):
    """The presence store or the database is temporarily unavailable."""

    status_code = 503
