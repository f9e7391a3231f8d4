"""
Auth dependencies for protected FastAPI routes.

A resolved caller also becomes the platform's current identity for the rest
of the request (see `content.identity`).
"""

from __future__ import annotations

from fastapi import Depends, Header

from content import identity
from core.errors import AuthorizationError

from . import service


def _extract_bearer_token(authorization: str | None) -> str:
    raw = (authorization or "").strip()
    if not raw:
        raise AuthorizationError("You must be logged in.")

    parts = raw.split(" ", 1)
    if len(parts) != 2:
        raise AuthorizationError("Invalid Authorization header format.")

    scheme, token = parts[0].strip().lower(), parts[1].strip()
    if scheme != "bearer" or not token:
        raise AuthorizationError("Authorization must be: Bearer <token>.")
    return token


async def get_bearer_token(authorization: str | None = Header(default=None)) -> str:
    return _extract_bearer_token(authorization)


async def get_current_user(access_token: str = Depends(get_bearer_token)) -> dict:
    user_row = await service.get_user_from_access_token(access_token)
    identity.set_current_user(int(user_row["id"]))
    return user_row
