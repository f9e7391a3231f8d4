"""Tests for custom-field id lists."""

from content import fields


class TestParseFieldIds:
    def test_json_list(self):
        assert fields.parse_field_ids("[3, 1, 2]") == [3, 1, 2]

    def test_list_of_objects(self):
        assert fields.parse_field_ids('[{"ID": 7}, {"ID": "8"}]') == [7, 8]

    def test_comma_separated(self):
        assert fields.parse_field_ids("4, 5,x") == [4, 5]

    def test_empty(self):
        assert fields.parse_field_ids(None) == []
        assert fields.parse_field_ids("") == []


def test_merge_keeps_order_and_drops_duplicates():
    assert fields.merge_field_ids([3, 1], [1, 4, 3, 5]) == [3, 1, 4, 5]


class TestAppendFieldIds:
    async def test_merges_into_existing(self, platform):
        await platform.update_post_meta(50, "vouchers", "[11, 12]")
        assert await fields.append_field_ids(50, "vouchers", [12, 13]) == [11, 12, 13]
        assert await fields.get_field_ids(50, "vouchers") == [11, 12, 13]

    def test_enabled_switch(self, monkeypatch):
        assert fields.enabled()
        monkeypatch.setenv("CUSTOM_FIELDS_ENABLED", "false")
        assert not fields.enabled()
