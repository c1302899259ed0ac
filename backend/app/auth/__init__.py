"""Authentication module (JWT bearer tokens).

Services:
    - TokenService: verifies access tokens presented over HTTP and in the
      WebSocket handshake.
"""

from .service import AuthenticatedUser, TokenService, extract_bearer_token

__all__ = ["AuthenticatedUser", "TokenService", "extract_bearer_token"]
