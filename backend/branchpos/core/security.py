"""Security utilities: JWT tokens, password hashing and the acting user."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, status
from jwt.exceptions import PyJWTError

from branchpos.core.config import settings

logger = logging.getLogger(__name__)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a bcrypt hash (timing-safe)."""
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError as e:
        logger.warning(f"Password verification error: {e}")
        return False


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Create a signed JWT access token."""
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire, "iat": now, "jti": secrets.token_urlsafe(16)})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a JWT token; None when invalid or expired."""
    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            options={"require": ["exp", "sub"]},
        )
    except PyJWTError as e:
        logger.debug(f"JWT decode error: {e}")
        return None


class CurrentUser:
    """The acting user behind a request, taken from the bearer token."""

    def __init__(self, user_id: str, email: str = "", role: str = "cashier"):
        self.id = user_id
        self.email = email
        self.role = role

    def __repr__(self) -> str:
        return f"CurrentUser(id={self.id!r}, role={self.role!r})"


async def get_current_user(request: Request) -> CurrentUser:
    """Resolve the acting user from ``Authorization: Bearer <token>``."""
    payload = None
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        if token:
            payload = decode_access_token(token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return CurrentUser(
        user_id=str(payload["sub"]),
        email=payload.get("email", ""),
        role=payload.get("role", "cashier"),
    )


ActingUser = Annotated[CurrentUser, Depends(get_current_user)]
