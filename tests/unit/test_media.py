"""Tests for media-library storage and media item normalisation."""

import io
import json

import pytest
from starlette.datastructures import Headers, UploadFile

from content import identity, media
from core.errors import ValidationError


def _upload(name, data=b"\x89PNG fake", content_type="image/png"):
    return UploadFile(io.BytesIO(data), filename=name, headers=Headers({"content-type": content_type}))


class TestHelpers:
    def test_sanitize_file_name(self):
        assert media.sanitize_file_name("../../etc/pass wd.jpg") == "pass-wd.jpg"
        assert media.sanitize_file_name("") == "file"

    def test_unique_path(self, tmp_path):
        (tmp_path / "a.jpg").write_bytes(b"x")
        (tmp_path / "a-1.jpg").write_bytes(b"x")
        assert media.unique_path(tmp_path, "a.jpg").name == "a-2.jpg"

    @pytest.mark.parametrize("seconds,expected", [(5, "0:05"), (125.4, "2:05"), (3725, "1:02:05"), ("x", None)])
    def test_format_duration(self, seconds, expected):
        assert media.format_duration(seconds) == expected

    def test_media_type(self):
        assert media.media_type("image/jpeg") == "image"
        assert media.media_type("audio/mpeg") == "audio"
        assert media.media_type(None) == "file"


class TestDescribe:
    def test_image_falls_back_to_original_for_missing_sizes(self):
        post = {"id": 5, "post_mime_type": "image/jpeg", "guid": "https://x/uploads/vouchers/1-1.jpg", "post_title": "1-1"}
        meta = {
            "_wp_attachment_image_alt": "Frog on a log",
            "_wp_attachment_metadata": json.dumps(
                {"width": 800, "height": 600, "sizes": {"thumbnail": {"file": "1-1-150x150.jpg", "width": 150, "height": 150}}}
            ),
        }
        item = media.describe(post, meta)
        assert item["type"] == "image"
        assert item["alt"] == "Frog on a log"
        assert item["sizes"]["thumbnail"]["url"] == "https://x/uploads/vouchers/1-1-150x150.jpg"
        assert item["sizes"]["large"] == {"url": post["guid"], "width": 800, "height": 600}
        assert set(item["sizes"]) == set(media.IMAGE_SIZES)

    def test_audio_duration(self):
        post = {"id": 6, "post_mime_type": "audio/mpeg", "guid": "u"}
        item = media.describe(post, {"_wp_attachment_metadata": json.dumps({"length": 61})})
        assert item["type"] == "audio"
        assert item["duration"] == "1:01"

    def test_url_from_attached_file(self):
        post = {"id": 7, "post_mime_type": "application/pdf", "guid": ""}
        item = media.describe(post, {"_wp_attached_file": "vouchers/a.pdf"})
        assert item["url"] == "https://herps.example.org/uploads/vouchers/a.pdf"
        assert item["type"] == "file"


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class TestStoreUpload:
    async def test_creates_attachment_as_actor(self, platform, tmp_path):
        parent = platform.add_post("record", "Green Frog")
        before = identity.current_user_id()
        attach_id = await media.store_upload(_upload("frog.png"), parent_post_id=parent, file_name="7-3.png", actor_id=9)

        post = platform.posts[attach_id]
        assert post["post_type"] == "attachment"
        assert post["post_parent"] == parent
        assert post["post_author"] == 9
        assert post["post_mime_type"] == "image/png"
        assert post["guid"] == "https://herps.example.org/uploads/vouchers/7-3.png"
        assert platform.post_meta[(attach_id, "_wp_attached_file")] == "vouchers/7-3.png"
        assert platform.post_meta[(attach_id, "_edit_last")] == "9"
        assert (tmp_path / "uploads" / "vouchers" / "7-3.png").read_bytes() == b"\x89PNG fake"
        # The acting identity is restored afterwards.
        assert identity.current_user_id() == before

    async def test_empty_upload_rejected(self, platform):
        parent = platform.add_post("record", "Green Frog")
        with pytest.raises(ValidationError) as excinfo:
            await media.store_upload(_upload("empty.png", data=b""), parent_post_id=parent)
        assert excinfo.value.code == "upload_failed"

    async def test_oversized_upload_rejected(self, platform, monkeypatch):
        monkeypatch.setenv("MAX_UPLOAD_BYTES", "4")
        parent = platform.add_post("record", "Green Frog")
        with pytest.raises(ValidationError) as excinfo:
            await media.store_upload(_upload("big.png"), parent_post_id=parent)
        assert excinfo.value.status == 413
