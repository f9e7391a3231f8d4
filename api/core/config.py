"""
Environment-backed settings.

Every setting is read on access (no import-time caching) so tests and
containers can override values through the environment.
"""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_LOCK_TIMEOUT_S = 5.0
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MiB
DEFAULT_CORS_ORIGINS = ("http://localhost:5173", "http://127.0.0.1:5173")

_TRUTHY = {"1", "true", "yes", "on"}


def env_str(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip() or default


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in _TRUTHY


def debug_mode() -> bool:
    return env_bool("HERP_DEBUG", False)


def id_lock_timeout_s() -> float:
    value = env_float("ID_LOCK_TIMEOUT_S", DEFAULT_LOCK_TIMEOUT_S)
    return value if value > 0 else DEFAULT_LOCK_TIMEOUT_S


def replacement_user_id() -> int:
    return max(env_int("REPLACEMENT_USER_ID", 0), 0)


def uploads_dir() -> Path:
    return Path(env_str("UPLOADS_DIR", "./uploads"))


def uploads_base_url() -> str:
    return env_str("UPLOADS_BASE_URL", "/uploads").rstrip("/")


def max_upload_bytes() -> int:
    value = env_int("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES)
    return value if value > 0 else DEFAULT_MAX_UPLOAD_BYTES


def custom_fields_enabled() -> bool:
    return env_bool("CUSTOM_FIELDS_ENABLED", True)


def cors_origins() -> list[str]:
    raw = os.environ.get("CORS_ORIGINS", "").strip()
    if not raw:
        return list(DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]
