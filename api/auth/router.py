"""
Auth API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from . import dependencies, schemas, service

router = APIRouter()


@router.post("/auth/token", response_model=schemas.TokenResponse)
async def token(payload: schemas.TokenRequest) -> schemas.TokenResponse:
    return await service.issue_token(payload)


@router.get("/auth/me", response_model=schemas.UserResponse)
async def me(current_user: dict = Depends(dependencies.get_current_user)) -> schemas.UserResponse:
    return service.to_user_response(current_user)
