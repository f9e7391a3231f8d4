"""Tests for structured API errors."""

import asyncpg

from core.errors import ApiError, NotFoundError, StorageWriteError, ValidationError, driver_diagnostics


class TestApiError:
    def test_payload_shape(self):
        err = ValidationError("Missing animals array", code="missing_animals")
        assert err.to_payload() == {
            "code": "missing_animals",
            "message": "Missing animals array",
            "data": {"status": 400},
        }

    def test_diagnostics_only_when_requested(self):
        err = StorageWriteError("boom", data={"record_id": 5}, diagnostics={"db_error": "x"})
        assert err.to_payload()["data"] == {"status": 500, "record_id": 5}
        assert err.to_payload(include_diagnostics=True)["data"] == {"status": 500, "record_id": 5, "db_error": "x"}

    def test_status_override(self):
        assert ApiError("x", status=503).status == 503

    def test_not_found_suggestions_in_data(self):
        err = NotFoundError("Unknown species: Frog", code="unknown_species", suggestions=["Green Frog"])
        assert err.to_payload()["data"] == {"status": 400, "suggestions": ["Green Frog"]}


def test_driver_diagnostics():
    out = driver_diagnostics(asyncpg.UniqueViolationError("duplicate key"))
    assert out["db_error"] == "duplicate key"
    assert out["db_error_type"] == "UniqueViolationError"
    assert out["db_sqlstate"] == "23505"
