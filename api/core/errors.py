"""
Structured API errors.

Every failure that reaches a client is an `ApiError` rendered as:

    {"code": "...", "message": "...", "data": {"status": 400, ...}}

`data` is always returned. `diagnostics` carries driver-level detail
(SQL error text, SQLSTATE, acting identity, ...) and is merged into `data`
only for privileged callers or in debug mode.
"""

from __future__ import annotations

from typing import Any


class ApiError(Exception):
    default_status = 500
    default_code = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        data: dict[str, Any] | None = None,
        diagnostics: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.status = int(status or self.default_status)
        self.data: dict[str, Any] = dict(data or {})
        self.diagnostics: dict[str, Any] = dict(diagnostics or {})

    def to_payload(self, *, include_diagnostics: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status}
        data.update(self.data)
        if include_diagnostics and self.diagnostics:
            data.update(self.diagnostics)
        return {"code": self.code, "message": self.message, "data": data}


class ValidationError(ApiError):
    default_status = 400
    default_code = "invalid_input"


class NotFoundError(ApiError):
    """Name resolution failed. `suggestions` helps the client fix typos."""

    default_status = 400
    default_code = "not_found"

    def __init__(self, message: str, *, suggestions: list[str] | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.suggestions = list(suggestions or [])
        if self.suggestions:
            self.data.setdefault("suggestions", self.suggestions)


class LockTimeoutError(ApiError):
    """Id allocation lock could not be acquired in time. Retrying is safe."""

    default_status = 503
    default_code = "lock_timeout"


class StorageWriteError(ApiError):
    default_status = 500
    default_code = "storage_write_failed"


class AuthorizationError(ApiError):
    default_status = 401
    default_code = "not_logged_in"


class ExternalDependencyError(ApiError):
    default_status = 500
    default_code = "dependency_missing"


def driver_diagnostics(exc: BaseException) -> dict[str, Any]:
    """
    Pull what asyncpg exposes about a failed statement.
    """
    out: dict[str, Any] = {"db_error": str(exc), "db_error_type": type(exc).__name__}
    sqlstate = getattr(exc, "sqlstate", None)
    if sqlstate:
        out["db_sqlstate"] = sqlstate
    detail = getattr(exc, "detail", None)
    if detail:
        out["db_detail"] = detail
    constraint = getattr(exc, "constraint_name", None)
    if constraint:
        out["db_constraint"] = constraint
    return out
