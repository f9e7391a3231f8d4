"""HTTP tests: records and auth endpoints over the in-memory platform."""

import json

import asyncpg

from auth import security
from content import repository as content_repository
from core import allocator
from core.errors import LockTimeoutError
from records import repository as records_repository

from tests.conftest import ADMIN_ID, AUTHOR_ID, EDITOR_ID, auth_headers

FROG = {"group": "Frogs", "species": "Green Frog"}
BULLFROG = {"group": "Frogs", "species": "Bullfrog"}
PNG = b"\x89PNG fake image"


def create(client, body, user_id=AUTHOR_ID, **kwargs):
    return client.post("/records", json=body, headers=auth_headers(user_id), **kwargs)


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# POST /records
# ---------------------------------------------------------------------------


class TestCreateEndpoint:
    def test_requires_login(self, client):
        response = client.post("/records", json={"animals": [FROG]})
        assert response.status_code == 401
        assert response.json() == {
            "code": "not_logged_in",
            "message": "You must be logged in.",
            "data": {"status": 401},
        }

    def test_json_body(self, client, platform):
        response = create(client, {"record": {"county": "Washtenaw"}, "animals": [FROG]})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        (item,) = body["created"]
        assert item == {
            "record_id": 1,
            "post_id": platform.records[1]["r_post_id"],
            "voucher_attachment_ids": [],
            "voucher_legacy_vids": [],
        }

    def test_admin_sees_voucher_details(self, client):
        response = create(client, {"animals": [FROG]}, user_id=ADMIN_ID)
        item = response.json()["created"][0]
        assert item["voucher_received_count"] == 0
        assert item["voucher_upload_errors"] == []

    def test_unknown_species_reports_suggestions(self, client, platform):
        response = create(client, {"animals": [FROG, {"group": "Frogs", "species": "Frog"}]})
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "unknown_species"
        assert body["data"] == {"status": 400, "suggestions": ["Green Frog"]}
        assert platform.records == {}

    def test_user_id_mismatch(self, client):
        response = create(client, {"user_id": EDITOR_ID, "animals": [FROG]})
        assert response.status_code == 400
        assert response.json()["code"] == "user_id_mismatch"

    def test_missing_animals(self, client):
        response = create(client, {"latitude": 42.1})
        assert response.status_code == 400
        assert response.json()["code"] == "missing_animals"

    def test_lock_timeout_is_503(self, client, monkeypatch):
        async def _locked(namespace, *, timeout_s=None):
            raise LockTimeoutError("Could not allocate record id (lock timeout)", code="herp_record_rid_lock_failed")

        monkeypatch.setattr(allocator, "allocate", _locked)
        response = create(client, {"animals": [FROG]})
        assert response.status_code == 503
        assert response.json()["code"] == "herp_record_rid_lock_failed"

    def test_diagnostics_only_for_privileged_callers(self, client, platform):
        platform.post_types.discard("record")

        plain = create(client, {"animals": [FROG]})
        assert plain.status_code == 500
        assert plain.json()["data"] == {"status": 500, "record_id": 1}

        privileged = create(client, {"animals": [FROG]}, user_id=ADMIN_ID)
        data = privileged.json()["data"]
        assert data["stage"] == "creating_content_entry"
        assert data["actor_id"] == ADMIN_ID

    def test_multipart_with_voucher(self, client, platform):
        response = client.post(
            "/records",
            headers=auth_headers(AUTHOR_ID),
            data={
                "animals[0][group]": "Frogs",
                "animals[0][species]": "Green Frog",
                "assigned_animal_index[0]": "0",
                "file_kind[0]": "image",
            },
            files=[("files", ("frog.png", PNG, "image/png"))],
        )
        assert response.status_code == 200
        (attach_id,) = response.json()["created"][0]["voucher_attachment_ids"]
        assert platform.posts[attach_id]["post_type"] == "attachment"

    def test_multipart_with_json_string_animals(self, client):
        response = client.post(
            "/records",
            headers=auth_headers(AUTHOR_ID),
            data={"record": json.dumps({"county": "Washtenaw"}), "animals": json.dumps([FROG, BULLFROG])},
        )
        assert response.status_code == 200
        assert [c["record_id"] for c in response.json()["created"]] == [1, 2]


# ---------------------------------------------------------------------------
# GET /records
# ---------------------------------------------------------------------------


class TestListEndpoint:
    def test_requires_user_id(self, client):
        for url in ("/records", "/records/abc", "/records/0"):
            response = client.get(url)
            assert response.status_code == 400
            assert response.json()["code"] == "missing_user_id"

    def test_newest_first_with_empty_vouchers(self, client):
        create(client, {"animals": [FROG, BULLFROG]})
        for url in (f"/records/{AUTHOR_ID}", f"/records?user_id={AUTHOR_ID}"):
            rows = client.get(url).json()
            assert [r["r_id"] for r in rows] == [2, 1]
            assert [r["vouchers"] for r in rows] == [[], []]

    def test_other_users_records_excluded(self, client):
        create(client, {"animals": [FROG]})
        assert client.get(f"/records/{EDITOR_ID}").json() == []

    def test_vouchers_from_custom_field(self, client):
        client.post(
            "/records",
            headers=auth_headers(AUTHOR_ID),
            data={"animals[0][group]": "Frogs", "animals[0][species]": "Green Frog", "assigned_animal_index[0]": "0"},
            files=[("files", ("frog.png", PNG, "image/png"))],
        )
        (row,) = client.get(f"/records/{AUTHOR_ID}").json()
        (voucher,) = row["vouchers"]
        assert voucher["type"] == "image"
        assert voucher["url"] == "https://herps.example.org/uploads/vouchers/frog.png"
        assert set(voucher["sizes"]) == {"thumbnail", "medium", "medium_large", "large", "full"}

    def test_vouchers_from_legacy_table(self, client, platform, monkeypatch):
        monkeypatch.setenv("CUSTOM_FIELDS_ENABLED", "false")
        platform.legacy_table = "voucher"
        client.post(
            "/records",
            headers=auth_headers(AUTHOR_ID),
            data={"animals[0][group]": "Frogs", "animals[0][species]": "Green Frog", "assigned_animal_index[0]": "0"},
            files=[("files", ("frog.png", PNG, "image/png"))],
        )
        (row,) = client.get(f"/records/{AUTHOR_ID}").json()
        (voucher,) = row["vouchers"]
        assert voucher["title"] == "1-1"
        assert voucher["url"].endswith("/vouchers/1-1.png")


# ---------------------------------------------------------------------------
# Database errors
# ---------------------------------------------------------------------------


class TestDatabaseErrors:
    def test_resolver_failure_is_structured(self, client, platform, monkeypatch):
        async def _down(taxonomy, *, name=None, slug=None):
            raise asyncpg.PostgresError("connection lost")

        monkeypatch.setattr(content_repository, "find_term_id", _down)

        plain = create(client, {"record": {"county": "Washtenaw"}, "animals": [FROG]})
        assert plain.status_code == 500
        assert plain.json() == {"code": "database_error", "message": "Database error", "data": {"status": 500}}

        privileged = create(client, {"record": {"county": "Washtenaw"}, "animals": [FROG]}, user_id=ADMIN_ID)
        assert privileged.status_code == 500
        assert privileged.json()["data"]["db_error_type"] == "PostgresError"
        assert platform.records == {}

    def test_list_failure_is_structured(self, client, monkeypatch):
        async def _down(user_id):
            raise asyncpg.PostgresError("connection lost")

        monkeypatch.setattr(records_repository, "list_user_records", _down)

        response = client.get(f"/records/{AUTHOR_ID}")
        assert response.status_code == 500
        assert response.json()["code"] == "database_error"
        assert response.json()["data"] == {"status": 500}


# ---------------------------------------------------------------------------
# POST /records/{id}/vouchers
# ---------------------------------------------------------------------------


class TestAppendEndpoint:
    def test_append_merges_into_field(self, client, platform):
        create(client, {"animals": [FROG]})
        response = client.post(
            "/records/1/vouchers",
            headers=auth_headers(AUTHOR_ID),
            files=[("files", ("a.png", PNG, "image/png")), ("files", ("b.png", PNG, "image/png"))],
        )
        assert response.status_code == 200
        ids = response.json()["record"]["voucher_attachment_ids"]
        assert len(ids) == 2
        assert [v["id"] for v in client.get(f"/records/{AUTHOR_ID}").json()[0]["vouchers"]] == ids

    def test_unknown_record(self, client):
        response = client.post(
            "/records/99/vouchers",
            headers=auth_headers(AUTHOR_ID),
            files=[("files", ("a.png", PNG, "image/png"))],
        )
        assert response.status_code == 404
        assert response.json()["code"] == "unknown_record"


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class TestAuthEndpoints:
    def test_token_and_me(self, client, platform):
        platform.users[AUTHOR_ID]["password_hash"] = security.hash_password("hunter2")
        response = client.post("/auth/token", json={"login": "Alice", "password": "hunter2"})
        assert response.status_code == 200
        token = response.json()["access_token"]

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
        assert me["id"] == AUTHOR_ID
        assert me["role"] == "author"
        assert "publish_posts" in me["capabilities"]

    def test_wrong_password(self, client, platform):
        platform.users[AUTHOR_ID]["password_hash"] = security.hash_password("hunter2")
        response = client.post("/auth/token", json={"login": "alice", "password": "nope"})
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_credentials"

    def test_bad_token(self, client):
        response = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_token"
