"""
Custom multi-value fields on documents.

A field is stored as a JSON array in post meta under its own key. Older writers
stored arrays of objects (`[{"ID": 12, ...}]`) or numeric strings; reads accept
all of these and always return plain ints.
"""

from __future__ import annotations

import json
from typing import Any, Iterable

from core import config

from . import repository


def enabled() -> bool:
    return config.custom_fields_enabled()


def parse_field_ids(raw: str | None) -> list[int]:
    if raw is None or not raw.strip():
        return []
    try:
        value: Any = json.loads(raw)
    except ValueError:
        # Some rows hold a bare comma list.
        value = [part for part in raw.split(",")]

    if not isinstance(value, list):
        value = [value]

    ids: list[int] = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("ID") or item.get("id")
        try:
            n = int(str(item).strip())
        except (TypeError, ValueError):
            continue
        if n > 0 and n not in ids:
            ids.append(n)
    return ids


def merge_field_ids(existing: Iterable[int], new: Iterable[int]) -> list[int]:
    """
    Order-preserving union: existing ids first, then unseen new ids.
    """
    merged: list[int] = []
    for n in list(existing) + list(new):
        if n not in merged:
            merged.append(n)
    return merged


async def get_field_ids(post_id: int, field_name: str) -> list[int]:
    return parse_field_ids(await repository.get_post_meta(post_id, field_name))


async def update_field_ids(post_id: int, field_name: str, ids: list[int]) -> None:
    await repository.update_post_meta(post_id, field_name, json.dumps([int(n) for n in ids]))


async def append_field_ids(post_id: int, field_name: str, new_ids: list[int]) -> list[int]:
    """
    Merge `new_ids` into the stored list and return the result.
    """
    existing = await get_field_ids(post_id, field_name)
    merged = merge_field_ids(existing, new_ids)
    if merged != existing:
        await update_field_ids(post_id, field_name, merged)
    return merged
