"""Tests for historical client field names."""

from records import aliases


class TestAliases:
    def test_first_present_non_null_key_wins(self):
        data = {"county_id": None, "countyId": 7, "county": "Washtenaw"}
        assert aliases.record_value(data, "county") == 7

    def test_pascal_and_camel_case(self):
        assert aliases.record_value({"FCAir": "F"}, "air_temp_units") == "F"
        assert aliases.record_value({"coordMethod": "GPS"}, "coord_method") == "GPS"
        assert aliases.animal_value({"QuantityObserved": "3"}, "quantity") == "3"

    def test_habitat_misspelling_accepted(self):
        assert aliases.record_value({"habbitat": "Wetland"}, "habitat") == "Wetland"

    def test_missing_returns_none(self):
        assert aliases.record_value({}, "latitude") is None
        assert aliases.first_value({"a": None}, ("a", "b")) is None
