"""
Bearer-token authentication for API routes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import jwt
from fastapi import Header
from jwt import PyJWTError

from backend.config import get_settings
from backend.errors import ApiError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def decode_token(token: str) -> dict[str, Any]:
    """Decode a user JWT, verifying it when a secret is configured."""
    settings = get_settings()
    if not settings.jwt_secret:
        logger.warning("JWT_SECRET is not set; decoding token without verification")
        return jwt.decode(
            token,
            options={"verify_signature": False, "verify_aud": False},
            algorithms=[JWT_ALGORITHM],
        )

    if settings.jwt_audience:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            audience=settings.jwt_audience,
        )
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[JWT_ALGORITHM],
        options={"verify_aud": False},
    )


@dataclass(frozen=True)
class AuthUser:
    user_id: str
    email: Optional[str] = None


def user_from_header(authorization: Optional[str]) -> AuthUser:
    if not authorization:
        raise ApiError(401, "No authorization header")

    token = authorization
    if token.lower().startswith("bearer "):
        token = token[7:]
    token = token.strip()

    try:
        payload = decode_token(token)
    except PyJWTError as exc:
        logger.info("Rejected token: %s", exc)
        raise ApiError(401, "Invalid authorization token") from exc

    user_id = payload.get("sub")
    if not user_id:
        raise ApiError(401, "Invalid authorization token")
    email = payload.get("email")
    email = email.strip().lower() if isinstance(email, str) else ""
    return AuthUser(user_id=str(user_id), email=email or None)


def user_id_from_header(authorization: Optional[str]) -> str:
    return user_from_header(authorization).user_id


def current_user_id(authorization: Optional[str] = Header(default=None)) -> str:
    """FastAPI dependency returning the caller's user id (the JWT ``sub``)."""
    return user_id_from_header(authorization)


def current_user(authorization: Optional[str] = Header(default=None)) -> AuthUser:
    """Like current_user_id, but also carries the token's email claim."""
    return user_from_header(authorization)
