"""JWT-based authentication for the web portal."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Header, HTTPException

from shared.config import Settings, get_settings

JWT_ALGORITHM = "HS256"


@dataclass
class PortalUser:
    """Authenticated portal user. Injected by require_auth."""

    user_id: uuid.UUID
    email: str = ""
    name: str = ""


def create_access_token(
    user_id: uuid.UUID,
    email: str = "",
    name: str = "",
    settings: Settings | None = None,
) -> str:
    """Issue a signed portal token for ``user_id``."""
    settings = settings or get_settings()
    if not settings.portal_jwt_secret:
        raise RuntimeError("PORTAL_JWT_SECRET is not configured")
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "name": name,
        "iat": now,
        "exp": now + timedelta(hours=settings.jwt_expiry_hours),
    }
    return jwt.encode(payload, settings.portal_jwt_secret, algorithm=JWT_ALGORITHM)


def _decode_token(token: str) -> PortalUser:
    """Decode and validate a JWT, returning a PortalUser."""
    settings = get_settings()
    if not settings.portal_jwt_secret:
        raise HTTPException(status_code=503, detail="Portal auth not configured")
    try:
        payload = jwt.decode(
            token, settings.portal_jwt_secret, algorithms=[JWT_ALGORITHM]
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token subject")

    return PortalUser(
        user_id=user_id,
        email=payload.get("email", ""),
        name=payload.get("name", ""),
    )


async def require_auth(authorization: str = Header()) -> PortalUser:
    """FastAPI dependency: extract and validate JWT from Authorization header.

    Expects: Authorization: Bearer <jwt>
    """
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")
    return _decode_token(authorization[7:])
