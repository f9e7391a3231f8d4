"""
POST /records payload parsing.

Accepted shapes (JSON body or form-encoded / multipart):

    {"record": {...}, "animals": [{...}, ...]}
    {<record fields at top level>, "animals" | "Animals": [...]}
    {..., "animal": {...}}                       single animal

Multipart clients often send nested objects as JSON strings, or as
bracket-notation keys (`animals[0][species]`). Voucher uploads arrive as
`files[]` with parallel `assigned_animal_index[]` and `file_kind[]` lists.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from fastapi import Request
from starlette.datastructures import UploadFile

from core.errors import ValidationError

from . import aliases

FILE_KEYS = ("files",)
DEFAULT_FILE_KIND = "image"

_BRACKET_RE = re.compile(r"\[([^\]]*)\]")


@dataclass(frozen=True)
class UploadedVoucher:
    file_index: int
    file: UploadFile
    animal_index: int | None
    kind: str


@dataclass
class CreateRequest:
    payload: dict[str, Any]
    record: dict[str, Any]
    animals: list[Any]
    uploads: list[UploadedVoucher] = field(default_factory=list)
    assigned_animal_index: list[Any] = field(default_factory=list)
    file_kind: list[Any] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Form helpers
# ---------------------------------------------------------------------------


def _key_parts(key: str) -> list[str]:
    head, _, _ = key.partition("[")
    return [head] + _BRACKET_RE.findall(key[len(head):])


def _listify(node: Any) -> Any:
    if not isinstance(node, dict):
        return node
    converted = {k: _listify(v) for k, v in node.items()}
    if converted and all(k.isdigit() for k in converted):
        return [converted[k] for k in sorted(converted, key=int)]
    return converted


def unflatten_form(items: list[tuple[str, Any]]) -> dict[str, Any]:
    """
    [("animals[0][species]", "Green Frog"), ("tags[]", "a")] ->
    {"animals": [{"species": "Green Frog"}], "tags": ["a"]}
    """
    root: dict[str, Any] = {}
    for key, value in items:
        parts = _key_parts(key)
        node = root
        for i, part in enumerate(parts):
            if part == "":
                part = str(len(node))
            if i == len(parts) - 1:
                node[part] = value
                break
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
    return {k: _listify(v) for k, v in root.items()}


def decode_json_string(value: Any) -> Any:
    """
    '{"a": 1}' -> {"a": 1}; anything that is not a JSON object/array string is returned as-is.
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    if not text or text[0] not in "[{":
        return value
    try:
        return json.loads(text)
    except ValueError:
        return value


def as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        # {"0": {...}, "1": {...}} from loosely-built forms.
        return list(value.values()) if value and all(str(k).isdigit() for k in value) else [value]
    return [value]


# ---------------------------------------------------------------------------
# Shape resolution
# ---------------------------------------------------------------------------


def split_payload(payload: dict[str, Any]) -> tuple[dict[str, Any], list[Any]]:
    """
    Return (record fields, animals) for any accepted payload shape.
    """
    record = decode_json_string(payload.get("record"))
    if not isinstance(record, dict) or not record:
        record = payload

    animals = as_list(decode_json_string(aliases.first_value(payload, aliases.ANIMAL_LIST_KEYS)))
    if not animals:
        single = decode_json_string(aliases.first_value(payload, aliases.SINGLE_ANIMAL_KEYS))
        if isinstance(single, dict) and single:
            animals = [single]

    if not animals:
        raise ValidationError("Missing animals array", code="missing_animals")
    return record, animals


def _parse_index(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return int(text)
    return None


def assign_uploads(
    files: list[UploadFile],
    assigned_animal_index: list[Any],
    file_kind: list[Any],
) -> list[UploadedVoucher]:
    uploads: list[UploadedVoucher] = []
    for i, upload in enumerate(files):
        animal_index = _parse_index(assigned_animal_index[i]) if i < len(assigned_animal_index) else None
        kind = str(file_kind[i]).strip().lower() if i < len(file_kind) and file_kind[i] is not None else ""
        uploads.append(
            UploadedVoucher(
                file_index=i,
                file=upload,
                animal_index=animal_index,
                kind=kind or DEFAULT_FILE_KIND,
            )
        )
    return uploads


# ---------------------------------------------------------------------------
# Request entrypoint
# ---------------------------------------------------------------------------


async def _read_json(request: Request) -> dict[str, Any]:
    body = await request.body()
    if not body.strip():
        return {}
    try:
        value = json.loads(body)
    except ValueError as exc:
        raise ValidationError("Request body is not valid JSON.", code="invalid_json") from exc
    return value if isinstance(value, dict) else {}


async def read_form(request: Request) -> tuple[dict[str, Any], list[UploadFile]]:
    form = await request.form()
    fields: list[tuple[str, Any]] = []
    files: list[UploadFile] = []
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            if _key_parts(key)[0] in FILE_KEYS:
                files.append(value)
            continue
        fields.append((key, value))
    return unflatten_form(fields), files


async def read_create_request(request: Request) -> CreateRequest:
    content_type = request.headers.get("content-type", "").lower()
    files: list[UploadFile] = []
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        payload, files = await read_form(request)
    else:
        payload = await _read_json(request)

    # Query params count as request params too (lowest precedence).
    query = unflatten_form(list(request.query_params.multi_items()))
    for key, value in query.items():
        payload.setdefault(key, value)

    record, animals = split_payload(payload)
    assigned = as_list(decode_json_string(payload.get("assigned_animal_index")))
    kinds = as_list(decode_json_string(payload.get("file_kind")))
    return CreateRequest(
        payload=payload,
        record=record,
        animals=animals,
        uploads=assign_uploads(files, assigned, kinds),
        assigned_animal_index=assigned,
        file_kind=kinds,
    )
