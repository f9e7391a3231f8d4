"""
Platform content-store persistence (raw SQL).

Typed documents live in `posts` (records, species, groups, attachments),
key/value metadata in `postmeta`, and taxonomy terms in
`terms` / `term_taxonomy` / `term_relationships`.

Soft-deleted documents have `post_status = 'trash'` and are never matched.
"""

from __future__ import annotations

from typing import Any

from core import db

POST_COLUMNS = """
    id, post_type, post_title, post_name, post_status, post_author, post_parent,
    post_mime_type, post_content, post_excerpt, guid, post_date, post_modified
"""


def _like_pattern(fragment: str) -> str:
    escaped = fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


async def post_type_exists(post_type: str) -> bool:
    row = await db.fetch_one("SELECT 1 AS ok FROM post_types WHERE name = $1", post_type)
    return row is not None


async def posts_has_auto_increment() -> bool:
    """
    Whether `posts.id` is generated by the database.

    If the column cannot be inspected, assume it is.
    """
    row = await db.fetch_one(
        """
        SELECT column_default, is_identity
        FROM information_schema.columns
        WHERE table_schema = current_schema()
          AND table_name = 'posts'
          AND column_name = 'id'
        LIMIT 1
        """
    )
    if row is None:
        return True
    default = str(row.get("column_default") or "")
    return default.startswith("nextval(") or str(row.get("is_identity") or "").upper() == "YES"


async def insert_post(
    *,
    post_id: int | None,
    post_type: str,
    title: str,
    status: str,
    author: int,
    slug: str = "",
    parent: int = 0,
    mime_type: str = "",
    guid: str = "",
    content: str = "",
) -> int | None:
    """
    Insert a document and return its id.

    With `post_id=None` the database assigns the id. A clashing explicit id
    raises `asyncpg.UniqueViolationError`.
    """
    if post_id is None:
        row = await db.fetch_one(
            """
            INSERT INTO posts (post_type, post_title, post_name, post_status, post_author,
                               post_parent, post_mime_type, guid, post_content)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            RETURNING id
            """,
            post_type, title, slug, status, author, parent, mime_type, guid, content,
        )
    else:
        row = await db.fetch_one(
            """
            INSERT INTO posts (id, post_type, post_title, post_name, post_status, post_author,
                               post_parent, post_mime_type, guid, post_content)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            RETURNING id
            """,
            post_id, post_type, title, slug, status, author, parent, mime_type, guid, content,
        )
    if row is None or not row.get("id"):
        return None
    return int(row["id"])


async def get_post(post_id: int) -> dict[str, Any] | None:
    return await db.fetch_one(f"SELECT {POST_COLUMNS} FROM posts WHERE id = $1", post_id)


async def get_posts(post_ids: list[int]) -> list[dict[str, Any]]:
    if not post_ids:
        return []
    return await db.fetch_all(
        f"SELECT {POST_COLUMNS} FROM posts WHERE id = ANY($1::bigint[]) AND post_status <> 'trash'",
        post_ids,
    )


async def find_post_id_by_slug(post_type: str, slug: str) -> int | None:
    value = await db.fetch_val(
        """
        SELECT id FROM posts
        WHERE post_type = $1 AND post_name = $2
        ORDER BY id DESC
        LIMIT 1
        """,
        post_type,
        slug,
    )
    return int(value) if value else None


async def find_attachment_id_by_guid(guid: str) -> int | None:
    value = await db.fetch_val(
        """
        SELECT id FROM posts
        WHERE post_type = 'attachment' AND guid = $1
        ORDER BY id DESC
        LIMIT 1
        """,
        guid,
    )
    return int(value) if value else None


async def find_post_id_by_title(
    post_type: str,
    title: str,
    *,
    parent_id: int | None = None,
    top_level: bool = False,
) -> int | None:
    """
    Exact title match; the most recent (highest id) wins.

    `parent_id` restricts to direct children of that document,
    `top_level` restricts to documents without a parent.
    """
    value = await db.fetch_val(
        """
        SELECT id FROM posts
        WHERE post_type = $1
          AND post_title = $2
          AND post_status <> 'trash'
          AND ($3::bigint IS NULL OR post_parent = $3)
          AND (NOT $4 OR post_parent = 0)
        ORDER BY id DESC
        LIMIT 1
        """,
        post_type,
        title,
        parent_id,
        top_level,
    )
    return int(value) if value else None


async def find_post_ids_by_sound(
    post_type: str,
    title: str,
    *,
    parent_id: int | None = None,
    limit: int = 5,
) -> list[int]:
    """
    Phonetic match on title (fuzzystrmatch `soundex`).
    """
    rows = await db.fetch_all(
        """
        SELECT id FROM posts
        WHERE post_type = $1
          AND post_status <> 'trash'
          AND ($3::bigint IS NULL OR post_parent = $3)
          AND soundex(post_title) = soundex($2)
        ORDER BY id DESC
        LIMIT $4
        """,
        post_type,
        title,
        parent_id,
        limit,
    )
    return [int(r["id"]) for r in rows]


async def search_post_titles(post_type: str, fragment: str, *, limit: int = 10) -> list[str]:
    rows = await db.fetch_all(
        """
        SELECT post_title FROM posts
        WHERE post_type = $1
          AND post_status <> 'trash'
          AND post_title LIKE $2
        ORDER BY post_title ASC
        LIMIT $3
        """,
        post_type,
        _like_pattern(fragment),
        limit,
    )
    return [str(r["post_title"]) for r in rows]


async def find_attachments_by_title(titles: list[str]) -> list[dict[str, Any]]:
    if not titles:
        return []
    return await db.fetch_all(
        f"""
        SELECT {POST_COLUMNS} FROM posts
        WHERE post_type = 'attachment'
          AND post_title = ANY($1::text[])
        ORDER BY id DESC
        """,
        titles,
    )


async def get_post_meta(post_id: int, key: str) -> str | None:
    value = await db.fetch_val(
        """
        SELECT meta_value FROM postmeta
        WHERE post_id = $1 AND meta_key = $2
        ORDER BY meta_id DESC
        LIMIT 1
        """,
        post_id,
        key,
    )
    return None if value is None else str(value)


async def get_post_meta_map(post_ids: list[int], keys: list[str]) -> dict[int, dict[str, str]]:
    """
    {post_id: {meta_key: meta_value}} for the requested keys (latest value wins).
    """
    if not post_ids or not keys:
        return {}
    rows = await db.fetch_all(
        """
        SELECT post_id, meta_key, meta_value FROM postmeta
        WHERE post_id = ANY($1::bigint[])
          AND meta_key = ANY($2::text[])
        ORDER BY meta_id ASC
        """,
        post_ids,
        keys,
    )
    out: dict[int, dict[str, str]] = {}
    for row in rows:
        out.setdefault(int(row["post_id"]), {})[str(row["meta_key"])] = str(row["meta_value"] or "")
    return out


async def update_post_meta(post_id: int, key: str, value: str) -> None:
    await db.execute(
        """
        WITH updated AS (
            UPDATE postmeta
            SET meta_value = $3
            WHERE post_id = $1 AND meta_key = $2
            RETURNING meta_id
        )
        INSERT INTO postmeta (post_id, meta_key, meta_value)
        SELECT $1, $2, $3
        WHERE NOT EXISTS (SELECT 1 FROM updated)
        """,
        post_id,
        key,
        value,
    )


async def find_term_id(taxonomy: str, *, name: str | None = None, slug: str | None = None) -> int | None:
    """
    Look a term up by exact name, or by slug when `name` is not given.
    """
    if name is None and slug is None:
        raise ValueError("find_term_id needs a name or a slug.")
    value = await db.fetch_val(
        """
        SELECT t.term_id
        FROM terms t
        JOIN term_taxonomy tt ON tt.term_id = t.term_id
        WHERE tt.taxonomy = $1
          AND ($2::text IS NULL OR t.name = $2)
          AND ($3::text IS NULL OR t.slug = $3)
        ORDER BY t.term_id DESC
        LIMIT 1
        """,
        taxonomy,
        name,
        slug,
    )
    return int(value) if value else None


async def set_object_terms(object_id: int, term_ids: list[int], taxonomy: str, *, append: bool = False) -> None:
    """
    Associate `object_id` with terms of `taxonomy`, replacing prior ones unless `append`.
    """
    async with db.transaction() as conn:
        if not append:
            await conn.execute(
                """
                DELETE FROM term_relationships tr
                USING term_taxonomy tt
                WHERE tr.term_taxonomy_id = tt.term_taxonomy_id
                  AND tr.object_id = $1
                  AND tt.taxonomy = $2
                """,
                object_id,
                taxonomy,
            )
        if term_ids:
            await conn.execute(
                """
                INSERT INTO term_relationships (object_id, term_taxonomy_id)
                SELECT $1, tt.term_taxonomy_id
                FROM term_taxonomy tt
                WHERE tt.taxonomy = $2
                  AND tt.term_id = ANY($3::bigint[])
                ON CONFLICT DO NOTHING
                """,
                object_id,
                taxonomy,
                term_ids,
            )
        await conn.execute(
            """
            UPDATE term_taxonomy tt
            SET count = (
                SELECT count(*) FROM term_relationships tr
                WHERE tr.term_taxonomy_id = tt.term_taxonomy_id
            )
            WHERE tt.taxonomy = $1
              AND tt.term_id = ANY($2::bigint[])
            """,
            taxonomy,
            term_ids,
        )
