"""
Historical field names accepted from mobile clients.

Each semantic field maps to an ordered list of accepted input keys
(snake_case, camelCase, PascalCase and a few one-off spellings). The first key
present with a non-null value wins.
"""

from __future__ import annotations

from typing import Any, Mapping

# Record-level (shared by every animal in the request).
RECORD_FIELDS: dict[str, tuple[str, ...]] = {
    "user_id": ("user_id", "userId", "UserId"),
    "county": ("county_id", "countyId", "CountyId", "county", "County"),
    "latitude": ("latitude", "Latitude"),
    "longitude": ("longitude", "Longitude"),
    "datetime": ("datetime", "dateTime", "DateTime"),
    "date": ("date", "Date"),
    "time": ("time", "Time"),
    "notes": ("notes", "Notes"),
    "locale": ("locale", "Locale", "area", "Area"),
    "township": ("township", "Township"),
    "range": ("range", "Range"),
    "section": ("section", "Section"),
    "humidity": ("humidity", "Humidity"),
    "sky": ("sky", "Sky"),
    "moon": ("moon", "Moon"),
    "air_temp": ("air_temp", "airTemp", "AirTemp"),
    "air_temp_units": ("air_temp_units", "airTempUnits", "FCAir", "fcAir"),
    "ground_temp": ("ground_temp", "groundTemp", "GroundTemp"),
    "ground_temp_units": ("ground_temp_units", "groundTempUnits", "FCGround", "fcGround"),
    "search_time": ("search_time", "searchTime", "SearchTime"),
    "accuracy": ("accuracy", "Accuracy"),
    "elevation": ("elevation", "Elevation"),
    "habitat": ("habitat", "Habitat", "habbitat", "Habbitat"),
    "method": ("method", "Method"),
    "coord_method": ("coord_method", "coordMethod", "CoordMethod", "coord-method", "Coord-Method"),
    "datum": ("datum", "Datum"),
    "research_id": ("research_id", "researchId", "ResearchId"),
    "other_observers": ("other_observers", "otherObservers", "OtherObservers"),
    "admin_notes": ("admin_notes", "adminNotes", "AdminNotes"),
    "anonymous": ("anonymous", "Anonymous"),
}

# Per-animal.
ANIMAL_FIELDS: dict[str, tuple[str, ...]] = {
    "group": ("group_id", "groupId", "GroupId", "group", "Group"),
    "species": ("species_id", "speciesId", "SpeciesId", "species", "Species"),
    "parent_species": ("parent_species", "parentSpecies", "ParentSpecies"),
    "quantity": ("quantity_observed", "quantityObserved", "QuantityObserved", "quantity", "Quantity"),
    "sex": ("sex", "Sex"),
    "age": ("age", "Age"),
    "disease": ("disease", "Disease"),
    "body_temp": ("body_temp", "bodyTemp", "BodyTemp"),
    "body_temp_units": ("body_temp_units", "bodyTempUnits", "BodyTempUnits"),
}

# Top-level payload keys.
ANIMAL_LIST_KEYS = ("animals", "Animals")
SINGLE_ANIMAL_KEYS = ("animal", "Animal")


def first_value(data: Mapping[str, Any], keys: tuple[str, ...] | list[str]) -> Any:
    """
    First non-null value among `keys`, or None.
    """
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def record_value(data: Mapping[str, Any], field: str) -> Any:
    return first_value(data, RECORD_FIELDS[field])


def animal_value(data: Mapping[str, Any], field: str) -> Any:
    return first_value(data, ANIMAL_FIELDS[field])
