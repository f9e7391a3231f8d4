"""
Namespace id allocator.

Some installs do not auto-increment their primary keys (the `record` table,
and on older hosts the platform `posts` table and legacy `voucher` table too).
Ids for those tables are allocated here as `max(id) + 1` while holding a
named lock scoped to the namespace.

Lock semantics:
- PostgreSQL advisory lock keyed by `hashtext(namespace.lock_name)`.
- Transaction scoped (`pg_advisory_xact_lock`), so it is released when the
  transaction commits or rolls back, on every exit path.
- Bounded wait through `SET LOCAL lock_timeout`. A timeout surfaces as
  `LockTimeoutError` (503): the caller may retry.

The lock only covers read-max-and-compute. Two callers can still race between
allocation and insert; writers retry on a primary-key collision.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import asyncpg

from . import config, db
from .errors import LockTimeoutError

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class Namespace:
    lock_name: str
    table: str
    column: str

    def __post_init__(self) -> None:
        # Table/column are interpolated into SQL; only plain identifiers are allowed.
        for ident in (self.table, self.column):
            if not _IDENTIFIER_RE.match(ident):
                raise ValueError(f"Invalid SQL identifier for namespace: {ident!r}")


RECORD_IDS = Namespace(lock_name="herp_record_rid", table="record", column="r_id")
POST_IDS = Namespace(lock_name="herp_posts_id", table="posts", column="id")


def voucher_ids(table: str) -> Namespace:
    """
    The legacy voucher table name is detected at runtime (prefixed or not).
    """
    return Namespace(lock_name="herp_voucher_vid", table=table, column="v_id")


def _next_id_sql(namespace: Namespace) -> str:
    # Rows with id 0 are broken legacy data and never count towards max().
    return (
        f"SELECT COALESCE(MAX({namespace.column}), 0) + 1 "
        f"FROM {namespace.table} WHERE {namespace.column} > 0"
    )


async def allocate(namespace: Namespace, *, timeout_s: float | None = None) -> int:
    """
    Return the next id for `namespace` (>= 1).
    """
    wait_s = timeout_s if timeout_s is not None else config.id_lock_timeout_s()
    wait_ms = max(int(wait_s * 1000), 1)

    async with db.transaction() as conn:
        # SET cannot take bind parameters; wait_ms is an int we computed.
        await conn.execute(f"SET LOCAL lock_timeout = '{wait_ms}ms'")
        try:
            await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", namespace.lock_name)
        except asyncpg.LockNotAvailableError as exc:
            logger.warning("id_lock_timeout namespace=%s wait_ms=%s", namespace.lock_name, wait_ms)
            raise LockTimeoutError(
                f"Could not allocate {namespace.table} id (lock timeout)",
                code=f"{namespace.lock_name}_lock_failed",
            ) from exc

        next_id = await conn.fetchval(_next_id_sql(namespace))

    next_id = int(next_id or 0)
    return next_id if next_id > 0 else 1
