"""
Voucher (media evidence) attachment for a record's content entry.

Per file:
1) insert a legacy voucher index row, if this install has that table
2) name the file `{record_id}-{v_id}.ext` (production naming convention)
3) store it in the media library under /vouchers, attached to the entry

Per-file failures are collected, never raised: a bad upload must not undo the
record it belongs to. Successful attachment ids are merged into the entry's
`vouchers` field.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

import asyncpg

from content import fields, media
from core import allocator
from core.errors import ApiError, StorageWriteError, driver_diagnostics

from . import repository
from .payload import UploadedVoucher

logger = logging.getLogger(__name__)

VOUCHERS_FIELD = "vouchers"
MAX_ID_ATTEMPTS = 5


@dataclass
class VoucherResult:
    attachment_ids: list[int] = field(default_factory=list)
    legacy_vids: list[int] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)


def legacy_voucher_type(kind: str) -> str:
    return "Audio" if (kind or "").strip().lower() == "audio" else "Photo"


def voucher_file_name(record_id: int, v_id: int, original_name: str | None) -> str:
    suffix = PurePath(original_name or "").suffix
    return f"{record_id}-{v_id}{suffix}"


async def insert_legacy_voucher_row(*, owner_id: int, record_id: int, kind: str) -> int:
    """
    Insert a legacy voucher index row and return its v_id (0 when the table is absent).
    """
    v_type = legacy_voucher_type(kind)
    try:
        table = await repository.find_legacy_voucher_table()
        if not table:
            return 0

        if await repository.legacy_voucher_has_auto_increment(table):
            return await repository.insert_legacy_voucher(
                table,
                v_id=None,
                owner_id=owner_id,
                record_id=record_id,
                v_type=v_type,
            ) or 0

        for _ in range(MAX_ID_ATTEMPTS):
            v_id = await allocator.allocate(allocator.voucher_ids(table))
            try:
                await repository.insert_legacy_voucher(
                    table,
                    v_id=v_id,
                    owner_id=owner_id,
                    record_id=record_id,
                    v_type=v_type,
                )
            except asyncpg.UniqueViolationError:
                logger.warning("voucher_id_collision table=%s v_id=%s", table, v_id)
                continue
            return v_id
    except asyncpg.PostgresError as exc:
        raise StorageWriteError(
            "Could not insert voucher row",
            code="voucher_insert_failed",
            diagnostics=driver_diagnostics(exc),
        ) from exc

    raise StorageWriteError(
        "Could not insert voucher row (id collisions)",
        code="voucher_insert_failed",
        diagnostics={"attempts": MAX_ID_ATTEMPTS},
    )


def _error_entry(upload: UploadedVoucher | None, exc: ApiError) -> dict[str, Any]:
    """
    One per failed file; `upload` is None for a failure of the merged field write.
    """
    return {
        "file_index": upload.file_index if upload else None,
        "assigned_animal_index": upload.animal_index if upload else None,
        "file_kind": upload.kind if upload else None,
        "error_code": exc.code,
        "error_message": exc.message,
        "error_data": exc.to_payload(include_diagnostics=True)["data"],
    }


async def attach_vouchers(
    uploads: list[UploadedVoucher],
    *,
    owner_id: int,
    record_id: int,
    post_id: int,
    actor_id: int | None,
) -> VoucherResult:
    result = VoucherResult()

    for upload in uploads:
        try:
            v_id = await insert_legacy_voucher_row(owner_id=owner_id, record_id=record_id, kind=upload.kind)
            file_name = voucher_file_name(record_id, v_id, upload.file.filename) if v_id > 0 else None
            attach_id = await media.store_upload(
                upload.file,
                parent_post_id=post_id,
                file_name=file_name,
                actor_id=actor_id,
            )
        except ApiError as exc:
            logger.warning(
                "voucher_failed record_id=%s file_index=%s code=%s",
                record_id,
                upload.file_index,
                exc.code,
            )
            result.errors.append(_error_entry(upload, exc))
            continue

        result.attachment_ids.append(attach_id)
        if v_id > 0:
            result.legacy_vids.append(v_id)

    if result.attachment_ids and fields.enabled():
        try:
            await fields.append_field_ids(post_id, VOUCHERS_FIELD, result.attachment_ids)
        except asyncpg.PostgresError as exc:
            logger.exception("voucher_field_update_failed record_id=%s post_id=%s", record_id, post_id)
            error = StorageWriteError(
                "Could not update the vouchers field",
                code="voucher_field_update_failed",
                diagnostics=driver_diagnostics(exc),
            )
            result.errors.append(_error_entry(None, error))

    return result
