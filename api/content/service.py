"""
Content-entry creation.

Hosts whose `posts.id` does not auto-increment get ids from the namespace
allocator (`posts` namespace). The write path is:

1) insert with the allocated id (or let the database assign one)
2) if the insert reports no id, look the entry up by its deterministic slug
   (or, for attachments, by guid)
3) on a key collision or a missing id, retry once with a freshly allocated id
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

import asyncpg

from core import allocator
from core.errors import ExternalDependencyError, StorageWriteError, driver_diagnostics

from . import identity, repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryDraft:
    post_type: str
    title: str
    status: str
    author: int
    slug: str = ""
    parent: int = 0
    mime_type: str = ""
    guid: str = ""
    content: str = ""


async def _insert(draft: EntryDraft, post_id: int | None) -> int | None:
    return await repository.insert_post(post_id=post_id, **asdict(draft))


async def _lookup(draft: EntryDraft) -> int | None:
    if draft.post_type == "attachment" and draft.guid:
        return await repository.find_attachment_id_by_guid(draft.guid)
    if draft.slug:
        return await repository.find_post_id_by_slug(draft.post_type, draft.slug)
    return None


async def create_entry(draft: EntryDraft) -> int:
    """
    Create a typed document and return its id.

    Raises ExternalDependencyError when the post type is not registered and
    StorageWriteError when no id could be obtained.
    """
    if not await repository.post_type_exists(draft.post_type):
        raise ExternalDependencyError(
            f'Post type "{draft.post_type}" is not registered. Is the theme active?',
            code=f"{draft.post_type}_post_type_missing",
        )

    has_auto_increment = await repository.posts_has_auto_increment()
    explicit_id = None if has_auto_increment else await allocator.allocate(allocator.POST_IDS)

    last_exc: asyncpg.PostgresError | None = None
    post_id: int | None = None
    try:
        post_id = await _insert(draft, explicit_id)
    except asyncpg.UniqueViolationError as exc:
        logger.warning("post_id_collision post_type=%s post_id=%s", draft.post_type, explicit_id)
        last_exc = exc
    except asyncpg.PostgresError as exc:
        raise StorageWriteError(
            f"Error creating {draft.post_type} entry",
            code="post_create_failed",
            diagnostics={
                **driver_diagnostics(exc),
                "post_type": draft.post_type,
                "desired_slug": draft.slug,
                "posts_has_auto_increment": has_auto_increment,
            },
        ) from exc

    if not post_id and last_exc is None:
        post_id = await _lookup(draft)
        if post_id:
            logger.warning("post_id_recovered_by_lookup post_type=%s post_id=%s", draft.post_type, post_id)

    if not post_id:
        retry_id = await allocator.allocate(allocator.POST_IDS)
        try:
            post_id = await _insert(draft, retry_id)
        except asyncpg.PostgresError as exc:
            raise StorageWriteError(
                f"Error creating {draft.post_type} entry",
                code="post_create_failed",
                diagnostics={
                    **driver_diagnostics(exc),
                    "post_type": draft.post_type,
                    "desired_slug": draft.slug,
                    "retry_post_id": retry_id,
                    "posts_has_auto_increment": has_auto_increment,
                },
            ) from exc

    if not post_id:
        raise StorageWriteError(
            f"Error creating {draft.post_type} entry",
            code="post_create_failed",
            diagnostics={
                "inner_code": "insert_returned_no_id",
                "post_type": draft.post_type,
                "desired_slug": draft.slug,
                "posts_has_auto_increment": has_auto_increment,
            },
        )

    await repository.update_post_meta(post_id, "_edit_last", str(identity.current_user_id()))
    return int(post_id)
