"""Bearer token verification (PyJWT).

Tokens are HS256 JWTs whose ``sub`` claim is the user id. Issuing tokens at
login is handled elsewhere; ``TokenService.issue`` exists so tests and seed
scripts can mint credentials with the same secret the server verifies.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from app.config import AppConfig
from app.errors import AuthenticationError

logger = logging.getLogger(__name__)

AUTH_REQUIRED = "Authentication required"
INVALID_TOKEN = "Invalid token"
ACCOUNT_BANNED = "Account banned"


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity extracted from a verified token. Never mutated afterwards."""
    user_id: str
    email: str
    role: str = "user"


def extract_bearer_token(
    auth_field: Optional[str], authorization_header: Optional[str]
) -> Optional[str]:
    """Pick the credential out of a handshake.

    The dedicated auth field wins; otherwise an ``Authorization: Bearer``
    header is accepted.
    """
    if auth_field:
        return auth_field.strip() or None
    if authorization_header:
        scheme, _, value = authorization_header.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
    return None


class TokenService:
    """Verifies and issues signed access tokens."""

    def __init__(self, secret_key: str, algorithm: str = "HS256",
                 expire_minutes: int = 60) -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._expire_minutes = expire_minutes

    @classmethod
    def from_config(cls, config: AppConfig) -> "TokenService":
        return cls(
            secret_key=config.secrets.jwt.secret_key,
            algorithm=config.auth.algorithm,
            expire_minutes=config.auth.token_expire_minutes,
        )

    def verify(self, token: Optional[str]) -> AuthenticatedUser:
        """Check signature and expiry and return the token's identity.

        Raises:
            AuthenticationError: ``"Authentication required"`` when no token
                was supplied, ``"Invalid token"`` for anything that fails
                verification.
        """
        if not token:
            raise AuthenticationError(AUTH_REQUIRED)
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.PyJWTError as exc:
            logger.info("[Auth] Token rejected: %s", exc)
            raise AuthenticationError(INVALID_TOKEN) from exc

        return AuthenticatedUser(
            user_id=str(claims["sub"]),
            email=claims.get("email", ""),
            role=claims.get("role", "user"),
        )

    def issue(self, user_id: str, email: str, role: str = "user",
              expires_in: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        lifetime = expires_in if expires_in is not None else timedelta(minutes=self._expire_minutes)
        payload = {
            "sub": user_id,
            "email": email,
            "role": role,
            "iat": now,
            "exp": now + lifetime,
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
