"""
Record persistence (raw SQL).

Schema (see db/migrations):
- record(r_id bigint PK, not auto-incrementing; r_post_id -> posts.id, nullable)
- voucher(v_id, v_owner, v_record, v_type): legacy per-record voucher index,
  present on some installs only (optionally with a platform table prefix).
"""

from __future__ import annotations

from typing import Any

from core import db

RECORD_COLUMNS = (
    "r_id",
    "r_uuid",
    "r_post_id",
    "r_owner",
    "r_source",
    "r_security",
    "r_searchtime",
    "r_animal",
    "r_time",
    "r_accuracy",
    "r_group",
    "r_taxon",
    "r_sex",
    "r_age",
    "r_qty",
    "r_disease",
    "r_bodytemp",
    "r_bodytemp_units",
    "r_latitude",
    "r_longitude",
    "r_county",
    "r_locale",
    "r_elevation",
    "r_habitat",
    "r_method",
    "r_coordmethod",
    "r_datum",
    "r_airtemp",
    "r_airtemp_units",
    "r_groundtemp",
    "r_groundtemp_units",
    "r_humidity",
    "r_sky",
    "r_moon",
    "r_research_id",
    "r_observers",
    "r_notes",
    "r_admin_notes",
    "r_restricted",
    "r_anonymous",
    "r_township",
    "r_range",
    "r_section",
)

LEGACY_VOUCHER_TABLES = ("voucher", "wp_voucher")


async def insert_record(row: dict[str, Any]) -> None:
    """
    Insert one record row. A clashing `r_id` raises `asyncpg.UniqueViolationError`.
    """
    unknown = set(row) - set(RECORD_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown record columns: {sorted(unknown)}")

    columns = [c for c in RECORD_COLUMNS if c in row]
    placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
    await db.execute(
        f"INSERT INTO record ({', '.join(columns)}) VALUES ({placeholders})",
        *[row[c] for c in columns],
    )


async def link_post(record_id: int, post_id: int) -> int:
    return await db.execute_count(
        "UPDATE record SET r_post_id = $2 WHERE r_id = $1",
        record_id,
        post_id,
    )


async def link_post_by_uuid(record_uuid: str, post_id: int) -> int:
    return await db.execute_count(
        "UPDATE record SET r_post_id = $2 WHERE r_uuid = $1",
        record_uuid,
        post_id,
    )


async def clear_post_ref(record_id: int) -> None:
    await db.execute("UPDATE record SET r_post_id = NULL WHERE r_id = $1", record_id)


async def get_record(record_id: int) -> dict[str, Any] | None:
    return await db.fetch_one(
        """
        SELECT r_id, r_uuid, r_post_id, r_owner
        FROM record
        WHERE r_id = $1
        """,
        record_id,
    )


async def list_user_records(user_id: int) -> list[dict[str, Any]]:
    """
    Records authored by `user_id`, newest first, in the website's joined shape.

    Genus terms may hang off the taxon itself or off its parent species.
    """
    return await db.fetch_all(
        """
        SELECT
          r.*,
          p.id AS post_id,
          p.post_author AS user_id,
          p.post_status AS post_status,
          p.post_date AS post_date,
          p.post_modified AS post_modified,

          taxon.id AS taxon_id,
          taxon.post_title AS taxon_title,
          taxon.post_parent AS species_id,
          parent_taxon.post_title AS species_title,

          grp.id AS group_id,
          grp.post_title AS group_title,

          county.term_id AS county_id,
          county.name AS county_title,

          genus.genus_ids,
          genus.genus_names
        FROM posts p
        JOIN record r
          ON r.r_post_id = p.id
        LEFT JOIN posts taxon
          ON taxon.id = r.r_taxon
        LEFT JOIN posts parent_taxon
          ON parent_taxon.id = taxon.post_parent
         AND taxon.post_parent <> 0
        LEFT JOIN posts grp
          ON grp.id = r.r_group
        LEFT JOIN terms county
          ON county.term_id = r.r_county
        LEFT JOIN LATERAL (
          SELECT
            string_agg(DISTINCT g.term_id::text, ',') AS genus_ids,
            string_agg(DISTINCT g.name, ',') AS genus_names
          FROM term_relationships tr
          JOIN term_taxonomy tt
            ON tt.term_taxonomy_id = tr.term_taxonomy_id
           AND tt.taxonomy = 'genus'
          JOIN terms g
            ON g.term_id = tt.term_id
          WHERE tr.object_id IN (taxon.id, parent_taxon.id)
        ) genus ON true
        WHERE p.post_type = 'record'
          AND p.post_author = $1
          AND p.post_status <> 'trash'
        ORDER BY r.r_id DESC
        """,
        user_id,
    )


# ---------------------------------------------------------------------------
# Legacy voucher index
# ---------------------------------------------------------------------------


def _checked_table(table: str) -> str:
    if table not in LEGACY_VOUCHER_TABLES:
        raise ValueError(f"Not a legacy voucher table: {table!r}")
    return table


async def find_legacy_voucher_table() -> str | None:
    """
    Name of the legacy voucher table on this install, or None.
    """
    for candidate in LEGACY_VOUCHER_TABLES:
        found = await db.fetch_val("SELECT to_regclass($1) IS NOT NULL", candidate)
        if found:
            return candidate
    return None


async def legacy_voucher_has_auto_increment(table: str) -> bool:
    row = await db.fetch_one(
        """
        SELECT column_default, is_identity
        FROM information_schema.columns
        WHERE table_schema = current_schema()
          AND table_name = $1
          AND column_name = 'v_id'
        LIMIT 1
        """,
        _checked_table(table),
    )
    if row is None:
        return False
    default = str(row.get("column_default") or "")
    return default.startswith("nextval(") or str(row.get("is_identity") or "").upper() == "YES"


async def insert_legacy_voucher(
    table: str,
    *,
    v_id: int | None,
    owner_id: int,
    record_id: int,
    v_type: str,
) -> int | None:
    """
    Insert a voucher index row and return its v_id.

    With `v_id=None` the database assigns it.
    """
    table = _checked_table(table)
    if v_id is None:
        value = await db.fetch_val(
            f"INSERT INTO {table} (v_owner, v_record, v_type) VALUES ($1, $2, $3) RETURNING v_id",
            owner_id,
            record_id,
            v_type,
        )
    else:
        value = await db.fetch_val(
            f"INSERT INTO {table} (v_id, v_owner, v_record, v_type) VALUES ($1, $2, $3, $4) RETURNING v_id",
            v_id,
            owner_id,
            record_id,
            v_type,
        )
    return int(value) if value else None


async def list_legacy_vouchers(table: str, record_id: int) -> list[dict[str, Any]]:
    return await db.fetch_all(
        f"""
        SELECT v_id, v_owner, v_record, v_type
        FROM {_checked_table(table)}
        WHERE v_record = $1
          AND v_id > 0
        ORDER BY v_id ASC
        """,
        record_id,
    )
