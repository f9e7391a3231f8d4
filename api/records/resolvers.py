"""
Name resolvers: human-supplied names -> content/taxonomy ids.

Tie-break everywhere: when several exact matches exist, the most recent
(highest id) wins.

Species resolution order:
1) with a parent name: parent by exact title, then an exact child title
2) without: a top-level exact match, then any exact match
3) phonetic (soundex) match within the same parent scope, only if unique
4) otherwise NotFoundError carrying title-substring suggestions
"""

from __future__ import annotations

import logging
import re
import unicodedata

from content import repository as content_repository
from core.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

GROUP_POST_TYPE = "group"
SPECIES_POST_TYPE = "species"
COUNTY_TAXONOMY = "county"

PHONETIC_CANDIDATE_LIMIT = 5
SUGGESTION_LIMIT = 10
SUGGESTIONS_IN_MESSAGE = 5

_COUNTY_WORD_RE = re.compile(r"\bcounty\b", re.IGNORECASE)
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9\s-]")
_SLUG_DASH_RE = re.compile(r"[\s-]+")


def slugify(value: str) -> str:
    """
    Platform-style slug: "Washtenaw County" -> "washtenaw-county".
    """
    text = unicodedata.normalize("NFKD", value or "").encode("ascii", "ignore").decode("ascii")
    text = _SLUG_STRIP_RE.sub("", text.lower())
    return _SLUG_DASH_RE.sub("-", text).strip("-")


async def resolve_group(name: str) -> int:
    group_name = (name or "").strip()
    if not group_name:
        raise ValidationError("Missing group name", code="missing_group")

    group_id = await content_repository.find_post_id_by_title(GROUP_POST_TYPE, group_name)
    if not group_id:
        raise NotFoundError(f"Unknown group: {group_name}", code="unknown_group")
    return group_id


async def _find_county(name: str) -> int | None:
    term_id = await content_repository.find_term_id(COUNTY_TAXONOMY, name=name)
    if not term_id:
        term_id = await content_repository.find_term_id(COUNTY_TAXONOMY, slug=slugify(name))
    return term_id


async def resolve_county(name: str) -> int:
    county_name = (name or "").strip()
    if not county_name:
        raise ValidationError("Missing county name", code="missing_county")

    term_id = await _find_county(county_name)
    # Clients often send "Washtenaw" for "Washtenaw County".
    if not term_id and not _COUNTY_WORD_RE.search(county_name):
        term_id = await _find_county(f"{county_name} County")

    if not term_id:
        raise NotFoundError(f"Unknown county: {county_name}", code="unknown_county")
    return term_id


async def _phonetic_match(species_name: str, *, parent_id: int | None) -> int | None:
    matches = await content_repository.find_post_ids_by_sound(
        SPECIES_POST_TYPE,
        species_name,
        parent_id=parent_id,
        limit=PHONETIC_CANDIDATE_LIMIT,
    )
    unique = list(dict.fromkeys(int(n) for n in matches))
    if len(unique) == 1:
        logger.info("species_phonetic_match name=%s species_id=%s", species_name, unique[0])
        return unique[0]
    return None


async def _not_found(species_name: str, *, code: str, message: str) -> NotFoundError:
    suggestions = await content_repository.search_post_titles(
        SPECIES_POST_TYPE,
        species_name,
        limit=SUGGESTION_LIMIT,
    )
    if suggestions:
        message += ". Did you mean: " + ", ".join(suggestions[:SUGGESTIONS_IN_MESSAGE]) + "?"
    return NotFoundError(message, code=code, suggestions=suggestions)


async def resolve_species(name: str, parent_name: str | None = None) -> int:
    species_name = (name or "").strip()
    if not species_name:
        raise ValidationError("Missing species name", code="missing_species")

    parent_title = (parent_name or "").strip()
    if parent_title:
        parent_id = await content_repository.find_post_id_by_title(SPECIES_POST_TYPE, parent_title)
        if not parent_id:
            raise NotFoundError(
                f"Unknown parent species: {parent_title}",
                code="unknown_parent_species",
            )

        species_id = await content_repository.find_post_id_by_title(
            SPECIES_POST_TYPE,
            species_name,
            parent_id=parent_id,
        )
        if not species_id:
            species_id = await _phonetic_match(species_name, parent_id=parent_id)
        if not species_id:
            raise await _not_found(
                species_name,
                code="unknown_subspecies",
                message=f"Unknown subspecies: {species_name} (parent: {parent_title})",
            )
        return species_id

    species_id = await content_repository.find_post_id_by_title(
        SPECIES_POST_TYPE,
        species_name,
        top_level=True,
    )
    if not species_id:
        species_id = await content_repository.find_post_id_by_title(SPECIES_POST_TYPE, species_name)
    if not species_id:
        species_id = await _phonetic_match(species_name, parent_id=None)
    if not species_id:
        raise await _not_found(
            species_name,
            code="unknown_species",
            message=f"Unknown species: {species_name}",
        )
    return species_id
