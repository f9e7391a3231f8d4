"""
Shared fixtures: an in-memory platform with a few users, taxa and counties,
and an HTTP client that authenticates with real access tokens.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from auth import security

from tests.fakes import FakePlatform

ADMIN_ID = 1
AUTHOR_ID = 2
SUBSCRIBER_ID = 3
EDITOR_ID = 9

FROGS_ID = 10
GREEN_FROG_ID = 20
BULLFROG_ID = 21
PAINTED_TURTLE_ID = 30
MIDLAND_PAINTED_TURTLE_ID = 31
WASHTENAW_ID = 101


@pytest.fixture(autouse=True)
def _env(monkeypatch, tmp_path):
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("UPLOADS_BASE_URL", "https://herps.example.org/uploads")
    monkeypatch.setenv("JWT_SECRET", "test-secret-that-is-long-enough-for-hs256")
    for name in ("HERP_DEBUG", "REPLACEMENT_USER_ID", "CUSTOM_FIELDS_ENABLED", "MAX_UPLOAD_BYTES"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def platform(monkeypatch) -> FakePlatform:
    fake = FakePlatform()
    fake.add_user(ADMIN_ID, "administrator", login="admin")
    fake.add_user(AUTHOR_ID, "author", login="alice")
    fake.add_user(SUBSCRIBER_ID, "subscriber", login="sam")
    fake.add_user(EDITOR_ID, "editor", login="records-bot")

    fake.add_post("group", "Frogs", post_id=FROGS_ID)
    fake.add_post("species", "Green Frog", post_id=GREEN_FROG_ID)
    fake.add_post("species", "Bullfrog", post_id=BULLFROG_ID)
    fake.add_post("species", "Painted Turtle", post_id=PAINTED_TURTLE_ID)
    fake.add_post("species", "Midland Painted Turtle", post_id=MIDLAND_PAINTED_TURTLE_ID, parent=PAINTED_TURTLE_ID)

    fake.add_term("county", "Washtenaw County", "washtenaw-county", term_id=WASHTENAW_ID)
    return fake.install(monkeypatch)


@pytest.fixture
def client(platform) -> TestClient:
    from main import app

    # Not entered as a context manager: the lifespan (DB pool) is not needed.
    return TestClient(app)


def auth_headers(user_id: int, login: str = "") -> dict[str, str]:
    token = security.build_access_token(user_id=user_id, login=login or f"user{user_id}")
    return {"Authorization": f"Bearer {token}"}
