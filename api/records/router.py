"""
Record API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from auth import capabilities
from auth import dependencies as auth_dependencies
from core import config

from . import payload, reader, writer

router = APIRouter()


def _wants_diagnostics(request: Request, user: dict) -> bool:
    include = config.debug_mode() or capabilities.user_can(user, "manage_options")
    # Read by the ApiError handler in main.py.
    request.state.include_diagnostics = include
    return include


@router.get("/records")
async def list_records_by_query(user_id: str | None = Query(default=None)) -> list[dict]:
    return await reader.list_records(reader.check_user_id(user_id))


@router.get("/records/{user_id}")
async def list_records(user_id: str) -> list[dict]:
    return await reader.list_records(reader.check_user_id(user_id))


@router.post("/records")
async def create_records(
    request: Request,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    """
    Create one record per animal in the payload, with optional voucher uploads.
    """
    include_debug = _wants_diagnostics(request, current_user)
    create_request = await payload.read_create_request(request)
    outcome = await writer.create_records(create_request, owner=current_user)

    response: dict = {
        "success": True,
        "created": [
            writer.created_item(item, include_debug=include_debug, request=create_request)
            for item in outcome.created
        ],
    }
    if include_debug and outcome.diagnostics.warnings:
        response["warnings"] = outcome.diagnostics.warnings
    return response


@router.post("/records/{record_id}/vouchers")
async def add_vouchers(
    record_id: int,
    request: Request,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    """
    Attach more voucher files to an existing record owned by the caller.
    """
    include_debug = _wants_diagnostics(request, current_user)
    form, files = await payload.read_form(request)
    assigned = payload.as_list(payload.decode_json_string(form.get("assigned_animal_index")))
    kinds = payload.as_list(payload.decode_json_string(form.get("file_kind")))
    uploads = payload.assign_uploads(files, assigned, kinds)

    item = await writer.append_vouchers(record_id, uploads, owner=current_user)
    return {
        "success": True,
        "record": writer.created_item(item, include_debug=include_debug),
    }
