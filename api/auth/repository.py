"""
Auth persistence helpers (platform users).
"""

from __future__ import annotations

from core import db


def normalize_login(login: str) -> str:
    return (login or "").strip().lower()


async def get_user_by_login(login: str) -> dict | None:
    return await db.fetch_one(
        """
        SELECT id, user_login, email, password_hash, role, is_active, created_at
        FROM users
        WHERE lower(user_login) = $1
           OR lower(email) = $1
        ORDER BY id
        LIMIT 1
        """,
        normalize_login(login),
    )


async def get_user_by_id(user_id: int) -> dict | None:
    return await db.fetch_one(
        """
        SELECT id, user_login, email, password_hash, role, is_active, created_at
        FROM users
        WHERE id = $1
        """,
        user_id,
    )


async def get_user_meta(user_id: int, key: str) -> str | None:
    value = await db.fetch_val(
        """
        SELECT meta_value
        FROM usermeta
        WHERE user_id = $1
          AND meta_key = $2
        ORDER BY umeta_id DESC
        LIMIT 1
        """,
        user_id,
        key,
    )
    return None if value is None else str(value)
