"""
Caller identity for the task workflow.

Login (OAuth/session) happens elsewhere; this module only verifies the signed
bearer token it produces and resolves it to an ``AuthenticatedUser`` principal
with ``{id, role, full_name}``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import AuthenticationRequired, Forbidden
from app.models.user import User
from workforce_shared.schemas.common import Role

log = structlog.get_logger()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


class AuthenticatedUser:
    """Container for the acting user of a workflow operation."""

    __slots__ = ("id", "role", "full_name")

    def __init__(self, id: uuid.UUID, role: str, full_name: str = ""):
        self.id = id
        self.role = role
        self.full_name = full_name

    @classmethod
    def from_user(cls, user: User) -> "AuthenticatedUser":
        return cls(id=user.id, role=user.role, full_name=user.full_name)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    def __repr__(self) -> str:
        return f"AuthenticatedUser(id={self.id}, role={self.role!r})"


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_access_token(
    user: User | AuthenticatedUser,
    *,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed bearer token for a user."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user.id),
        "role": user.role,
        "iat": now,
        "exp": exp,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    """Decode and verify a bearer token. Raises jwt.PyJWTError on failure."""
    settings = get_settings()
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

async def get_authenticated_user(
    authorization: Optional[str] = Depends(api_key_header),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    """Resolve ``Authorization: Bearer <jwt>`` to the acting user."""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationRequired()

    token = authorization[7:].strip()
    try:
        payload = decode_access_token(token)
        user_id = uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise AuthenticationRequired("Invalid or expired session")

    user = await session.get(User, user_id)
    if not user:
        log.info("auth.unknown_user", user_id=str(user_id))
        raise AuthenticationRequired("User not found")

    return AuthenticatedUser.from_user(user)


async def require_admin(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """Requires the admin role."""
    if not auth.is_admin:
        raise Forbidden("Administrator access required")
    return auth
