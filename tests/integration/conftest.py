"""
PostgreSQL fixtures. Tests here run only when TEST_DATABASE_URL points at a
disposable database: its public schema is dropped and rebuilt from
db/migrations for every test.
"""

from __future__ import annotations

import os
from pathlib import Path

import asyncpg
import pytest

from core import db

MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "db" / "migrations"


def _up_section(sql: str) -> str:
    up = sql.split("-- migrate:up", 1)[-1]
    return up.split("-- migrate:down", 1)[0]


@pytest.fixture
def database_url() -> str:
    url = os.environ.get("TEST_DATABASE_URL", "").strip()
    if not url:
        pytest.skip("TEST_DATABASE_URL is not set")
    return url


@pytest.fixture
async def database(database_url):
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute("DROP SCHEMA IF EXISTS public CASCADE; CREATE SCHEMA public;")
        for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
            await conn.execute(_up_section(path.read_text()))
    finally:
        await conn.close()

    await db.init_pool(database_url)
    try:
        yield
    finally:
        await db.close_pool()
