"""
Auth business logic.
"""

from __future__ import annotations

from core.errors import AuthorizationError

from . import capabilities, repository, schemas, security


def to_user_response(user_row: dict) -> schemas.UserResponse:
    return schemas.UserResponse(
        id=int(user_row["id"]),
        user_login=str(user_row["user_login"]),
        email=str(user_row.get("email") or ""),
        role=str(user_row.get("role") or ""),
        capabilities=sorted(capabilities.capabilities_for(user_row)),
        created_at=user_row.get("created_at"),
    )


async def issue_token(payload: schemas.TokenRequest) -> schemas.TokenResponse:
    user_row = await repository.get_user_by_login(payload.login)
    if user_row is None:
        raise AuthorizationError("Invalid login or password.", code="invalid_credentials")

    if not bool(user_row.get("is_active", False)):
        raise AuthorizationError("User is inactive.", code="user_inactive", status=403)

    is_valid = security.verify_password(payload.password, str(user_row.get("password_hash") or ""))
    if not is_valid:
        raise AuthorizationError("Invalid login or password.", code="invalid_credentials")

    access_token = security.build_access_token(
        user_id=int(user_row["id"]),
        login=str(user_row["user_login"]),
    )
    return schemas.TokenResponse(access_token=access_token, user=to_user_response(user_row))


async def get_user_from_access_token(access_token: str) -> dict:
    try:
        payload = security.decode_access_token(access_token)
    except security.AuthSecurityError as exc:
        raise AuthorizationError(str(exc), code="invalid_token") from exc

    subject = str(payload.get("sub") or "").strip()
    if not subject.isdigit():
        raise AuthorizationError("Invalid access token subject.", code="invalid_token")

    user_row = await repository.get_user_by_id(int(subject))
    if user_row is None:
        raise AuthorizationError("User not found.", code="invalid_token")
    if not bool(user_row.get("is_active", False)):
        raise AuthorizationError("User is inactive.", code="user_inactive", status=403)
    return user_row
