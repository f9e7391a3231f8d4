"""
Record listing: a user's records, newest first, each with its media vouchers.
"""

from __future__ import annotations

import logging
from typing import Any

from content import fields, media
from content import repository as content_repository
from core.errors import ValidationError

from . import repository
from .vouchers import VOUCHERS_FIELD

logger = logging.getLogger(__name__)


def check_user_id(value: Any) -> int:
    text = str(value if value is not None else "").strip()
    user_id = int(text) if text.isdigit() else 0
    if user_id <= 0:
        raise ValidationError("Missing user_id", code="missing_user_id")
    return user_id


async def _legacy_vouchers(record_id: int) -> list[dict[str, Any]]:
    """
    Media named `{record_id}-{v_id}` for each legacy voucher row of the record.
    """
    table = await repository.find_legacy_voucher_table()
    if not table:
        return []
    rows = await repository.list_legacy_vouchers(table, record_id)
    titles = [f"{record_id}-{int(row['v_id'])}" for row in rows]
    if not titles:
        return []

    posts = await content_repository.find_attachments_by_title(titles)
    by_title = {}
    for post in posts:
        by_title.setdefault(str(post.get("post_title") or ""), post)
    order = [int(by_title[t]["id"]) for t in titles if t in by_title]
    return await media.describe_rows(list(by_title.values()), order=order)


async def record_vouchers(row: dict[str, Any]) -> list[dict[str, Any]]:
    post_id = int(row.get("post_id") or 0)
    if post_id and fields.enabled():
        attachment_ids = await fields.get_field_ids(post_id, VOUCHERS_FIELD)
        if attachment_ids:
            return await media.describe_attachments(attachment_ids)
    return await _legacy_vouchers(int(row["r_id"]))


async def list_records(user_id: int) -> list[dict[str, Any]]:
    rows = await repository.list_user_records(user_id)
    records = []
    for row in rows:
        records.append({**row, "vouchers": await record_vouchers(row)})
    logger.info("records_listed user_id=%s count=%s", user_id, len(records))
    return records
