"""
Media-library ingestion and media item normalisation.

Stored files live under `UPLOADS_DIR/<subdir>/` and are served from
`UPLOADS_BASE_URL/<subdir>/`. Each file gets an `attachment` document whose
parent is the owning content entry.
"""

from __future__ import annotations

import json
import logging
import mimetypes
import re
from pathlib import Path
from typing import Any

import asyncpg
from fastapi import UploadFile

from core import config
from core.errors import StorageWriteError, ValidationError, driver_diagnostics

from . import identity, repository, service

logger = logging.getLogger(__name__)

VOUCHER_SUBDIR = "vouchers"

IMAGE_SIZES = ("thumbnail", "medium", "medium_large", "large", "full")

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_file_name(name: str) -> str:
    base = Path(name or "").name.strip()
    base = _UNSAFE_CHARS_RE.sub("-", base).strip(".-")
    return base or "file"


def unique_path(directory: Path, file_name: str) -> Path:
    """
    `name.ext`, then `name-1.ext`, `name-2.ext`, ... until unused.
    """
    candidate = directory / file_name
    stem, suffix = candidate.stem, candidate.suffix
    n = 1
    while candidate.exists():
        candidate = directory / f"{stem}-{n}{suffix}"
        n += 1
    return candidate


async def read_upload_bytes(file: UploadFile, max_bytes: int) -> bytes:
    """
    Read the upload into memory, enforcing a maximum size.
    """
    chunk_size = 1024 * 1024  # 1 MiB
    buf = bytearray()

    while True:
        chunk = await file.read(chunk_size)
        if not chunk:
            break
        buf.extend(chunk)
        if len(buf) > max_bytes:
            raise ValidationError(
                f"File too large. Max is {max_bytes} bytes.",
                code="upload_too_large",
                status=413,
            )

    return bytes(buf)


def guess_mime_type(file_name: str, declared: str | None) -> str:
    declared = (declared or "").strip().lower()
    if declared and declared != "application/octet-stream":
        return declared
    guessed, _ = mimetypes.guess_type(file_name)
    return guessed or declared or "application/octet-stream"


async def store_upload(
    file: UploadFile,
    *,
    parent_post_id: int,
    file_name: str | None = None,
    actor_id: int | None = None,
    subdir: str = VOUCHER_SUBDIR,
) -> int:
    """
    Write the upload into the media library and return the attachment id.
    """
    if parent_post_id <= 0:
        raise StorageWriteError("Invalid post_id for voucher upload", code="invalid_post_id")

    if not file.filename and not file_name:
        raise ValidationError("Missing filename.", code="invalid_upload")

    data = await read_upload_bytes(file, max_bytes=config.max_upload_bytes())
    if not data:
        raise ValidationError("Uploaded file is empty.", code="upload_failed")

    target_dir = config.uploads_dir() / subdir
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        path = unique_path(target_dir, sanitize_file_name(file_name or file.filename or ""))
        path.write_bytes(data)
    except OSError as exc:
        raise StorageWriteError(
            "Could not move uploaded voucher file",
            code="upload_move_failed",
            diagnostics={"error": str(exc)},
        ) from exc

    relative = f"{subdir}/{path.name}"
    url = f"{config.uploads_base_url()}/{relative}"
    mime_type = guess_mime_type(path.name, file.content_type)

    try:
        with identity.acting_as(actor_id):
            attach_id = await service.create_entry(
                service.EntryDraft(
                    post_type="attachment",
                    title=path.stem,
                    status="inherit",
                    author=identity.current_user_id(),
                    parent=parent_post_id,
                    mime_type=mime_type,
                    guid=url,
                )
            )
        await repository.update_post_meta(attach_id, "_wp_attached_file", relative)
    except asyncpg.PostgresError as exc:
        logger.exception("media_store_failed parent=%s file=%s", parent_post_id, relative)
        raise StorageWriteError(
            "Could not register uploaded voucher file",
            code="attachment_create_failed",
            diagnostics={**driver_diagnostics(exc), "file": relative},
        ) from exc
    logger.info("media_stored attachment_id=%s parent=%s file=%s", attach_id, parent_post_id, relative)
    return attach_id


def media_type(mime_type: str | None) -> str:
    mime = (mime_type or "").lower()
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("audio/"):
        return "audio"
    return "file"


def format_duration(seconds: Any) -> str | None:
    try:
        total = int(round(float(seconds)))
    except (TypeError, ValueError):
        return None
    if total < 0:
        return None
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def _load_json(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}


def _image_sizes(url: str, metadata: dict[str, Any]) -> dict[str, dict[str, Any]]:
    base_url = url.rsplit("/", 1)[0] if "/" in url else ""
    known = metadata.get("sizes") if isinstance(metadata.get("sizes"), dict) else {}
    sizes: dict[str, dict[str, Any]] = {}
    for name in IMAGE_SIZES:
        entry = known.get(name) if isinstance(known, dict) else None
        if name != "full" and isinstance(entry, dict) and entry.get("file"):
            sizes[name] = {
                "url": f"{base_url}/{entry['file']}" if base_url else str(entry["file"]),
                "width": entry.get("width"),
                "height": entry.get("height"),
            }
        else:
            # Sizes are not generated on upload; fall back to the original.
            sizes[name] = {
                "url": url,
                "width": metadata.get("width"),
                "height": metadata.get("height"),
            }
    return sizes


def describe(post: dict[str, Any], meta: dict[str, str]) -> dict[str, Any]:
    """
    Normalised media item for one attachment document.
    """
    kind = media_type(post.get("post_mime_type"))
    url = str(post.get("guid") or "")
    if not url and meta.get("_wp_attached_file"):
        url = f"{config.uploads_base_url()}/{meta['_wp_attached_file']}"

    item: dict[str, Any] = {
        "id": int(post["id"]),
        "type": kind,
        "mime_type": str(post.get("post_mime_type") or ""),
        "url": url,
        "title": str(post.get("post_title") or ""),
        "caption": str(post.get("post_excerpt") or ""),
        "description": str(post.get("post_content") or ""),
    }

    metadata = _load_json(meta.get("_wp_attachment_metadata"))
    if kind == "image":
        item["alt"] = meta.get("_wp_attachment_image_alt", "")
        item["sizes"] = _image_sizes(url, metadata)
    elif kind == "audio":
        duration = metadata.get("length_formatted") or format_duration(metadata.get("length"))
        if duration:
            item["duration"] = duration
    return item


MEDIA_META_KEYS = ["_wp_attached_file", "_wp_attachment_metadata", "_wp_attachment_image_alt"]


async def describe_attachments(attachment_ids: list[int]) -> list[dict[str, Any]]:
    """
    Resolve attachment ids into media items, keeping the given order.

    Ids that no longer resolve to an attachment are skipped.
    """
    posts = await repository.get_posts(attachment_ids)
    return await describe_rows(posts, order=attachment_ids)


async def describe_rows(posts: list[dict[str, Any]], *, order: list[int] | None = None) -> list[dict[str, Any]]:
    by_id = {int(p["id"]): p for p in posts if p.get("post_type") == "attachment"}
    ids = [n for n in (order or list(by_id)) if n in by_id]
    meta = await repository.get_post_meta_map(ids, MEDIA_META_KEYS)
    return [describe(by_id[n], meta.get(n, {})) for n in ids]
