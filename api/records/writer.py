"""
Record creation pipeline.

A request carries shared record fields plus one or more animals; each animal
becomes one `record` row and one `record` content entry:

    Resolving -> Allocating -> InsertingRow -> CreatingContentEntry
              -> LinkingReferences -> AttachingTaxonomyAndMedia -> Done

`Failed` is reachable from every stage.

Resolving runs for the whole request before anything is written, so a bad
name anywhere aborts the request with nothing committed. After that, each
animal is written independently and in order; the first failure stops the
request (animals already written stay written).

The two stores are not transactionally joined. The row is inserted first,
then the content entry is created, then the row is pointed at it. If the
entry cannot be created the row's reference is explicitly cleared.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import asyncpg

from auth import capabilities
from auth import repository as auth_repository
from content import identity
from content import repository as content_repository
from content import service as content_service
from core import allocator, config
from core.errors import ApiError, AuthorizationError, StorageWriteError, ValidationError, driver_diagnostics

from . import aliases, normalize, repository, resolvers, vouchers
from .diagnostics import Diagnostics
from .payload import CreateRequest, UploadedVoucher

logger = logging.getLogger(__name__)

RECORD_POST_TYPE = "record"
RECORD_SOURCE = "mobile"
MAX_INSERT_ATTEMPTS = 5


class WriteStage(str, Enum):
    RESOLVING = "resolving"
    ALLOCATING = "allocating"
    INSERTING_ROW = "inserting_row"
    CREATING_CONTENT_ENTRY = "creating_content_entry"
    LINKING_REFERENCES = "linking_references"
    ATTACHING_TAXONOMY_AND_MEDIA = "attaching_taxonomy_and_media"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class SharedFields:
    county_id: int
    columns: dict[str, Any]


@dataclass(frozen=True)
class AnimalPlan:
    index: int
    group_id: int
    taxon_id: int
    columns: dict[str, Any]
    uploads: list[UploadedVoucher]


@dataclass
class AnimalProgress:
    index: int
    stage: WriteStage = WriteStage.RESOLVING
    record_id: int = 0
    record_uuid: str = ""
    post_id: int = 0

    def advance(self, stage: WriteStage) -> None:
        logger.debug("record_stage animal=%s stage=%s record_id=%s", self.index, stage.value, self.record_id)
        self.stage = stage


@dataclass
class CreatedAnimal:
    animal_index: int
    record_id: int
    post_id: int
    vouchers: vouchers.VoucherResult


@dataclass
class WriteOutcome:
    created: list[CreatedAnimal] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


# ---------------------------------------------------------------------------
# Resolving
# ---------------------------------------------------------------------------


async def _security_level(owner_id: int) -> str:
    preference = await auth_repository.get_user_meta(owner_id, "preferences_security_level")
    return "Sensitive" if (preference or "").strip() == "sensitive" else "Non-sensitive"


async def resolve_shared(record: dict[str, Any], *, owner_id: int, diagnostics: Diagnostics) -> SharedFields:
    county_id = 0
    county_value = aliases.record_value(record, "county")
    if normalize.is_numeric_id(county_value):
        county_id = int(county_value)
    elif normalize.as_text(county_value):
        county_id = await resolvers.resolve_county(str(county_value))

    observed_at = normalize.observation_time(
        aliases.record_value(record, "datetime"),
        aliases.record_value(record, "date"),
        aliases.record_value(record, "time"),
    )

    trs = normalize.normalize_trs(
        aliases.record_value(record, "township"),
        aliases.record_value(record, "range"),
        aliases.record_value(record, "section"),
        locale=normalize.as_text(aliases.record_value(record, "locale")),
    )
    for label, field_name, stored in (
        ("Township", "township", trs.township),
        ("Range", "range", trs.range),
        ("Section", "section", trs.section),
    ):
        raw = normalize.as_text(aliases.record_value(record, field_name))
        if raw and not stored:
            diagnostics.warn(
                "trs_preserved_in_locale",
                f"{label} value does not fit the survey grid; kept in locale text.",
                field=field_name,
                value=raw,
            )

    columns: dict[str, Any] = {
        "r_owner": str(owner_id),
        "r_source": RECORD_SOURCE,
        "r_security": await _security_level(owner_id),
        "r_searchtime": normalize.as_int(aliases.record_value(record, "search_time")),
        "r_animal": 0,
        "r_time": normalize.parse_datetime(observed_at),
        "r_accuracy": normalize.as_int(aliases.record_value(record, "accuracy")),
        "r_latitude": normalize.as_float(aliases.record_value(record, "latitude")),
        "r_longitude": normalize.as_float(aliases.record_value(record, "longitude")),
        "r_county": county_id,
        "r_locale": trs.locale,
        "r_elevation": normalize.as_float(aliases.record_value(record, "elevation")),
        "r_habitat": normalize.as_text(aliases.record_value(record, "habitat")),
        "r_method": normalize.as_text(aliases.record_value(record, "method")),
        "r_coordmethod": normalize.as_text(aliases.record_value(record, "coord_method")),
        "r_datum": normalize.as_text(aliases.record_value(record, "datum")),
        "r_airtemp": normalize.as_float(aliases.record_value(record, "air_temp")),
        "r_airtemp_units": normalize.normalize_temp_units(aliases.record_value(record, "air_temp_units")),
        "r_groundtemp": normalize.as_float(aliases.record_value(record, "ground_temp")),
        "r_groundtemp_units": normalize.normalize_temp_units(aliases.record_value(record, "ground_temp_units")),
        "r_humidity": normalize.as_int(aliases.record_value(record, "humidity")),
        "r_sky": normalize.as_text(aliases.record_value(record, "sky")),
        "r_moon": normalize.normalize_moon(aliases.record_value(record, "moon")),
        "r_research_id": normalize.as_text(aliases.record_value(record, "research_id")),
        "r_observers": normalize.as_text(aliases.record_value(record, "other_observers")),
        "r_notes": normalize.as_text(aliases.record_value(record, "notes")),
        "r_admin_notes": normalize.as_text(aliases.record_value(record, "admin_notes")),
        "r_restricted": 0,
        "r_anonymous": normalize.as_flag(aliases.record_value(record, "anonymous")),
        "r_township": trs.township,
        "r_range": trs.range,
        "r_section": trs.section,
    }
    return SharedFields(county_id=county_id, columns=columns)


async def resolve_animal(animal: dict[str, Any], *, index: int, uploads: list[UploadedVoucher]) -> AnimalPlan:
    group_value = aliases.animal_value(animal, "group")
    if normalize.is_numeric_id(group_value):
        group_id = int(group_value)
    elif normalize.as_text(group_value):
        group_id = await resolvers.resolve_group(str(group_value))
    else:
        raise ValidationError("Missing animal.group", code="missing_group", data={"animal_index": index})

    species_value = aliases.animal_value(animal, "species")
    if normalize.is_numeric_id(species_value):
        taxon_id = int(species_value)
    elif normalize.as_text(species_value):
        parent = aliases.animal_value(animal, "parent_species")
        taxon_id = await resolvers.resolve_species(
            str(species_value),
            normalize.as_text(parent) or None,
        )
    else:
        raise ValidationError("Missing animal.species", code="missing_species", data={"animal_index": index})

    quantity = normalize.as_int(aliases.animal_value(animal, "quantity"), 1)
    columns = {
        "r_group": group_id,
        "r_taxon": taxon_id,
        "r_qty": quantity if quantity > 0 else 1,
        "r_sex": normalize.as_text(aliases.animal_value(animal, "sex")),
        "r_age": normalize.as_text(aliases.animal_value(animal, "age")),
        "r_disease": normalize.as_text(aliases.animal_value(animal, "disease"), "No") or "No",
        "r_bodytemp": normalize.as_float(aliases.animal_value(animal, "body_temp")),
        "r_bodytemp_units": normalize.normalize_temp_units(aliases.animal_value(animal, "body_temp_units")),
    }
    return AnimalPlan(
        index=index,
        group_id=group_id,
        taxon_id=taxon_id,
        columns=columns,
        uploads=[u for u in uploads if u.animal_index == index],
    )


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


async def insert_record_row(columns: dict[str, Any], progress: AnimalProgress) -> int:
    """
    Allocate an id and insert, retrying on primary-key collisions.
    """
    attempts: list[int] = []
    for _ in range(MAX_INSERT_ATTEMPTS):
        progress.advance(WriteStage.ALLOCATING)
        record_id = await allocator.allocate(allocator.RECORD_IDS)
        attempts.append(record_id)

        progress.advance(WriteStage.INSERTING_ROW)
        try:
            await repository.insert_record({**columns, "r_id": record_id})
        except asyncpg.UniqueViolationError:
            logger.warning("record_id_collision record_id=%s", record_id)
            continue
        except asyncpg.PostgresError as exc:
            logger.exception("record_insert_failed record_id=%s", record_id)
            raise StorageWriteError(
                "Error creating record in database",
                code="db_insert_failed",
                diagnostics={**driver_diagnostics(exc), "record_id": record_id, "uuid": columns.get("r_uuid")},
            ) from exc
        return record_id

    raise StorageWriteError(
        "Error creating record in database",
        code="db_insert_failed",
        diagnostics={"inner_code": "record_id_collisions", "attempted_ids": attempts},
    )


async def choose_actor(owner: dict) -> dict:
    """
    The identity that creates the content entry.

    The owner, unless it may not create entries; then the configured
    replacement identity if it can create entries on behalf of others.
    """
    if capabilities.user_can(owner, "edit_posts"):
        return owner

    replacement_id = config.replacement_user_id()
    if replacement_id > 0:
        replacement = await auth_repository.get_user_by_id(replacement_id)
        if capabilities.user_can(replacement, "edit_posts") and capabilities.user_can(replacement, "edit_others_posts"):
            return replacement
    return owner


async def _entry_title(taxon_id: int, record_id: int) -> str:
    taxon = await content_repository.get_post(taxon_id) if taxon_id else None
    title = str((taxon or {}).get("post_title") or "").strip()
    return title or f"Record #{record_id}"


async def _create_entry(draft: content_service.EntryDraft) -> int:
    try:
        return await content_service.create_entry(draft)
    except asyncpg.PostgresError as exc:
        raise StorageWriteError(
            f"Error creating {draft.post_type} entry",
            code="post_create_failed",
            diagnostics=driver_diagnostics(exc),
        ) from exc


async def create_content_entry(plan: AnimalPlan, *, owner: dict, actor: dict, progress: AnimalProgress) -> int:
    owner_id = int(owner["id"])
    actor_id = int(actor["id"])
    status = "publish" if capabilities.user_can(actor, "publish_posts") else "pending"
    slug = f"record-{progress.record_id}"
    title = await _entry_title(plan.taxon_id, progress.record_id)

    draft = content_service.EntryDraft(
        post_type=RECORD_POST_TYPE,
        title=title,
        status=status,
        author=owner_id,
        slug=slug,
    )
    try:
        with identity.acting_as(actor_id):
            return await _create_entry(draft)
    except ApiError as exc:
        try:
            await repository.clear_post_ref(progress.record_id)
        except asyncpg.PostgresError:
            logger.exception("record_ref_clear_failed record_id=%s", progress.record_id)
        exc.data.setdefault("record_id", progress.record_id)
        exc.diagnostics.update(
            {
                "user_id": owner_id,
                "actor_id": actor_id,
                "post_status": status,
                "desired_slug": slug,
                "species_title": title,
                "author_can_edit_posts": capabilities.user_can(owner, "edit_posts"),
                "actor_can_edit_posts": capabilities.user_can(actor, "edit_posts"),
                "actor_can_edit_others_posts": capabilities.user_can(actor, "edit_others_posts"),
            }
        )
        raise


async def link_references(progress: AnimalProgress, *, diagnostics: Diagnostics) -> None:
    try:
        updated = await repository.link_post(progress.record_id, progress.post_id)
        if updated == 0:
            diagnostics.warn(
                "record_link_by_uuid",
                "Record row not matched by id; linked by uuid.",
                record_id=progress.record_id,
                post_id=progress.post_id,
            )
            await repository.link_post_by_uuid(progress.record_uuid, progress.post_id)
    except asyncpg.PostgresError as exc:
        raise StorageWriteError(
            "Could not link record to its post",
            code="record_link_failed",
            data={"record_id": progress.record_id, "post_id": progress.post_id},
            diagnostics=driver_diagnostics(exc),
        ) from exc

    # Keeps the theme from auto-creating a second record row for this post.
    await content_repository.update_post_meta(progress.post_id, "record_been_saved", "1")


async def write_animal(
    plan: AnimalPlan,
    shared: SharedFields,
    *,
    owner: dict,
    diagnostics: Diagnostics,
) -> CreatedAnimal:
    progress = AnimalProgress(index=plan.index, record_uuid=str(uuid.uuid4()))
    columns = {
        **shared.columns,
        **plan.columns,
        "r_uuid": progress.record_uuid,
    }

    try:
        progress.record_id = await insert_record_row(columns, progress)

        progress.advance(WriteStage.CREATING_CONTENT_ENTRY)
        actor = await choose_actor(owner)
        progress.post_id = await create_content_entry(plan, owner=owner, actor=actor, progress=progress)

        progress.advance(WriteStage.LINKING_REFERENCES)
        await link_references(progress, diagnostics=diagnostics)

        progress.advance(WriteStage.ATTACHING_TAXONOMY_AND_MEDIA)
        voucher_result = await vouchers.attach_vouchers(
            plan.uploads,
            owner_id=int(owner["id"]),
            record_id=progress.record_id,
            post_id=progress.post_id,
            actor_id=int(actor["id"]),
        )
        for error in voucher_result.errors:
            diagnostics.warn(
                "voucher_upload_failed",
                str(error.get("error_message") or ""),
                record_id=progress.record_id,
                file_index=error.get("file_index"),
            )
        if shared.county_id:
            await content_repository.set_object_terms(progress.post_id, [shared.county_id], "county")
    except ApiError as exc:
        exc.diagnostics.setdefault("stage", progress.stage.value)
        exc.diagnostics.setdefault("animal_index", plan.index)
        progress.advance(WriteStage.FAILED)
        raise
    except asyncpg.PostgresError as exc:
        failed_stage = progress.stage.value
        progress.advance(WriteStage.FAILED)
        logger.exception("record_write_failed stage=%s record_id=%s", failed_stage, progress.record_id)
        raise StorageWriteError(
            "Error creating record",
            code="record_write_failed",
            data={"record_id": progress.record_id} if progress.record_id else None,
            diagnostics={**driver_diagnostics(exc), "stage": failed_stage, "animal_index": plan.index},
        ) from exc

    progress.advance(WriteStage.DONE)
    logger.info(
        "record_created record_id=%s post_id=%s owner=%s vouchers=%s",
        progress.record_id,
        progress.post_id,
        owner["id"],
        len(voucher_result.attachment_ids),
    )
    return CreatedAnimal(
        animal_index=plan.index,
        record_id=progress.record_id,
        post_id=progress.post_id,
        vouchers=voucher_result,
    )


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def check_payload_user(payload: dict[str, Any], *, owner_id: int) -> None:
    """
    The author is always the authenticated caller; a differing payload user_id is rejected.
    """
    payload_user_id = normalize.as_int(aliases.record_value(payload, "user_id"))
    if payload_user_id and payload_user_id != owner_id:
        raise AuthorizationError(
            "Payload user_id does not match logged-in user",
            code="user_id_mismatch",
            status=400,
        )


async def create_records(request: CreateRequest, *, owner: dict) -> WriteOutcome:
    owner_id = int(owner["id"])
    check_payload_user(request.payload, owner_id=owner_id)

    outcome = WriteOutcome()
    shared = await resolve_shared(request.record, owner_id=owner_id, diagnostics=outcome.diagnostics)

    plans: list[AnimalPlan] = []
    for index, animal in enumerate(request.animals):
        if not isinstance(animal, dict):
            outcome.diagnostics.warn("animal_skipped", "Animal entry is not an object.", animal_index=index)
            continue
        plans.append(await resolve_animal(animal, index=index, uploads=request.uploads))

    if not plans:
        raise ValidationError("No records created (invalid animals payload)", code="no_records_created")

    for plan in plans:
        outcome.created.append(
            await write_animal(plan, shared, owner=owner, diagnostics=outcome.diagnostics)
        )
    return outcome


async def append_vouchers(record_id: int, uploads: list[UploadedVoucher], *, owner: dict) -> CreatedAnimal:
    """
    Add vouchers to an existing record's content entry (merged, never replaced).
    """
    row = await repository.get_record(record_id)
    if row is None:
        raise ValidationError(f"Unknown record: {record_id}", code="unknown_record", status=404)
    if str(row.get("r_owner") or "") != str(owner["id"]):
        raise AuthorizationError("Record belongs to another user", code="record_owner_mismatch", status=400)
    post_id = int(row.get("r_post_id") or 0)
    if post_id <= 0:
        raise ValidationError("Record has no content entry", code="record_not_linked")
    if not uploads:
        raise ValidationError("Missing files", code="missing_files")

    actor = await choose_actor(owner)
    result = await vouchers.attach_vouchers(
        uploads,
        owner_id=int(owner["id"]),
        record_id=record_id,
        post_id=post_id,
        actor_id=int(actor["id"]),
    )
    return CreatedAnimal(animal_index=0, record_id=record_id, post_id=post_id, vouchers=result)


def created_item(
    item: CreatedAnimal,
    *,
    include_debug: bool,
    request: CreateRequest | None = None,
) -> dict[str, Any]:
    out: dict[str, Any] = {
        "record_id": item.record_id,
        "post_id": item.post_id,
        "voucher_attachment_ids": item.vouchers.attachment_ids,
        "voucher_legacy_vids": item.vouchers.legacy_vids,
    }
    if include_debug:
        if request is not None:
            out["voucher_received_count"] = len(request.uploads)
            out["voucher_assigned_animal_index"] = request.assigned_animal_index
            out["voucher_file_kind"] = request.file_kind
        out["voucher_upload_errors"] = item.vouchers.errors
    return out
