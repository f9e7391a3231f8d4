"""Tests for create-request payload shapes."""

import pytest

from core.errors import ValidationError
from records import payload


class TestUnflattenForm:
    def test_bracket_keys_become_nested_lists(self):
        out = payload.unflatten_form(
            [
                ("animals[0][species]", "Green Frog"),
                ("animals[0][group]", "Frogs"),
                ("animals[1][species]", "Bullfrog"),
                ("latitude", "42.28"),
            ]
        )
        assert out == {
            "animals": [{"species": "Green Frog", "group": "Frogs"}, {"species": "Bullfrog"}],
            "latitude": "42.28",
        }

    def test_empty_brackets_append(self):
        out = payload.unflatten_form([("file_kind[]", "image"), ("file_kind[]", "audio")])
        assert out == {"file_kind": ["image", "audio"]}


class TestDecodeJsonString:
    def test_object_and_array_strings_decoded(self):
        assert payload.decode_json_string('{"a": 1}') == {"a": 1}
        assert payload.decode_json_string("[1, 2]") == [1, 2]

    def test_other_values_returned_as_is(self):
        assert payload.decode_json_string("Green Frog") == "Green Frog"
        assert payload.decode_json_string("{broken") == "{broken"
        assert payload.decode_json_string(5) == 5


class TestSplitPayload:
    def test_nested_record(self):
        record, animals = payload.split_payload(
            {"record": {"latitude": 1}, "animals": [{"species": "Green Frog"}]}
        )
        assert record == {"latitude": 1}
        assert animals == [{"species": "Green Frog"}]

    def test_flat_record_with_capitalised_animals(self):
        body = {"latitude": 1, "Animals": [{"species": "Green Frog"}]}
        record, animals = payload.split_payload(body)
        assert record is body
        assert len(animals) == 1

    def test_single_animal(self):
        _, animals = payload.split_payload({"animal": {"species": "Bullfrog"}})
        assert animals == [{"species": "Bullfrog"}]

    def test_json_string_fields(self):
        record, animals = payload.split_payload(
            {"record": '{"latitude": 1}', "animals": '[{"species": "Bullfrog"}]'}
        )
        assert record == {"latitude": 1}
        assert animals == [{"species": "Bullfrog"}]

    def test_missing_animals(self):
        with pytest.raises(ValidationError) as excinfo:
            payload.split_payload({"latitude": 1})
        assert excinfo.value.code == "missing_animals"


class TestAssignUploads:
    def test_parallel_lists(self):
        files = ["a.jpg", "b.mp3", "c.jpg"]
        uploads = payload.assign_uploads(files, ["0", 1], ["IMAGE", "audio"])
        assert [u.animal_index for u in uploads] == [0, 1, None]
        assert [u.kind for u in uploads] == ["image", "audio", "image"]
        assert [u.file_index for u in uploads] == [0, 1, 2]

    def test_non_numeric_index_is_unassigned(self):
        (upload,) = payload.assign_uploads(["a.jpg"], ["first"], [])
        assert upload.animal_index is None
