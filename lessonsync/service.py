"""Data-layer operations over a :class:`LessonContext`.

Every operation replaces ``ctx.snapshot`` with a fresh value, writes the
affected cache keys first and then queues the matching remote mirrors.
Remote failures never undo a local write.
"""

from __future__ import annotations

import dataclasses
import logging
import re
import time
from typing import Any, Dict, List, Literal, Optional, Sequence

from pydantic import TypeAdapter

from lesson_store.cache import (
    LESSON_PLANS_KEY,
    LIBRARY_ACTIVITIES_KEY,
    half_terms_key,
    lesson_data_key,
    tags_flat_key,
    tags_structured_key,
    units_key,
)
from lesson_store.remote import RemoteNotConfiguredError, RemoteStore
from lessonsync.context import LessonContext
from lessonsync.ingest import (
    NormalizedImport,
    extract_unique_activities,
    merge_catalogue,
    normalize_rows,
    read_csv_table,
)
from lessonsync.models import (
    DEFAULT_TAG_STATEMENTS,
    Activity,
    HalfTerm,
    LessonBundle,
    LessonData,
    LessonPlan,
    Unit,
    default_half_terms,
    flatten_tags,
    parse_lesson_number,
    structure_tags,
    utc_now,
)
from lessonsync.registry import (
    RegistrySnapshot,
    RenumberResult,
    assemble_bundle,
    build_lesson,
    promote_plan,
)
from lessonsync.registry import renumber
from lessonsync.sync import (
    REMOTE_FAILURES,
    Source,
    activity_to_row,
    bundle_to_row,
    plan_to_row,
    row_to_activity,
    row_to_bundle,
    row_to_plan,
    tags_to_row,
)

LOGGER = logging.getLogger("lessonsync.service")

BUNDLE_ADAPTER = TypeAdapter(LessonBundle)
UNITS_ADAPTER = TypeAdapter(List[Unit])
HALF_TERMS_ADAPTER = TypeAdapter(List[HalfTerm])
PLANS_ADAPTER = TypeAdapter(List[LessonPlan])
ACTIVITIES_ADAPTER = TypeAdapter(List[Activity])
TAGS_FLAT_ADAPTER = TypeAdapter(List[str])
TAGS_STRUCTURED_ADAPTER = TypeAdapter(Dict[str, List[str]])

LOCAL_ID_PREFIX = "local-"

SortKey = Literal["number", "title", "activities", "time"]

_HTML_TAG = re.compile(r"<[^>]+>")


class LessonNotFoundError(KeyError):
    """Raised when an explicit edit names a lesson number the class does not have."""


class PlanNotFoundError(LookupError):
    pass


class UnitNotFoundError(LookupError):
    pass


class HalfTermNotFoundError(LookupError):
    pass


class ActivityNotFoundError(LookupError):
    pass


# ----------------------------------------------------------------------
# Loading


async def load_class(ctx: LessonContext, class_name: str | None = None) -> Source:
    """Load every collection for ``class_name`` and make it the active class.

    The bundle comes from the remote store, then the cache, then the class's
    seed table; with none of those the class starts empty. A cleared context
    skips all stores.
    """

    class_name = class_name or ctx.class_name
    if ctx.cleared:
        ctx.snapshot = RegistrySnapshot(class_name=class_name)
        LOGGER.info("Data marked cleared; starting empty", extra={"class_name": class_name})
        return Source.CLEARED

    result = await ctx.reconciler.read(
        lesson_data_key(class_name),
        BUNDLE_ADAPTER,
        default=LessonBundle,
        fetch=lambda remote: _fetch_bundle(remote, class_name),
        migrate=lambda remote, bundle: remote.upsert_lessons(bundle_to_row(class_name, bundle)),
    )
    source = result.source
    if result.value is not None:
        bundle = result.value.repaired()
    else:
        bundle, seeded = _seed_bundle(ctx, class_name)
        source = Source.SEEDED if seeded is not None else Source.EMPTY

    snapshot = RegistrySnapshot(
        class_name=class_name,
        bundle=bundle,
        units=_read_local(ctx, units_key(class_name), UNITS_ADAPTER, list),
        half_terms=_read_local(ctx, half_terms_key(class_name), HALF_TERMS_ADAPTER, default_half_terms),
        tag_catalogue=await _load_tag_catalogue(ctx, class_name),
        plans=await _load_plans(ctx),
        activities=await _load_activities(ctx, bundle),
    )
    ctx.snapshot = snapshot
    LOGGER.info(
        "Loaded class",
        extra={"class_name": class_name, "source": source.value, "lessons": len(bundle.lessons)},
    )
    return source


async def _fetch_bundle(remote: RemoteStore, class_name: str) -> LessonBundle | None:
    row = await remote.fetch_lessons(class_name)
    return row_to_bundle(row) if row else None


async def _fetch_activities(remote: RemoteStore) -> List[Activity]:
    return [row_to_activity(row) for row in await remote.fetch_activities()]


async def _fetch_plans(remote: RemoteStore) -> List[LessonPlan]:
    return [row_to_plan(row) for row in await remote.fetch_lesson_plans()]


async def _fetch_tag_catalogue(remote: RemoteStore, class_name: str) -> List[str] | None:
    row = await remote.fetch_tag_statements(class_name)
    if not row or not row.get("all_statements"):
        return None
    return [str(statement) for statement in row["all_statements"]]


def _read_local(ctx: LessonContext, key: str, adapter: TypeAdapter[Any], default: Any) -> Any:
    value = ctx.cache.read(key, adapter, default)
    if value is None:
        value = default()
        ctx.cache.write(key, adapter, value)
    return value


def _seed_bundle(ctx: LessonContext, class_name: str) -> tuple[LessonBundle, NormalizedImport | None]:
    seed = ctx.config.class_config(class_name).seed_table
    if seed is None:
        return LessonBundle(), None
    if not seed.exists():
        LOGGER.warning("Seed table missing; starting empty", extra={"class_name": class_name, "path": str(seed)})
        return LessonBundle(), None

    normalized = normalize_rows(read_csv_table(seed), class_name=class_name)
    bundle = assemble_bundle(normalized, category_priority=ctx.config.category_order)
    bundle = _store_bundle(ctx, class_name, bundle)
    ctx.journal.log(
        {
            "stage": "seed",
            "message": f"Seeded {class_name} from {seed.name}",
            "class_name": class_name,
            "payload": {"lessons": len(bundle.lessons), "skipped_rows": normalized.skipped_rows},
        }
    )
    return bundle, normalized


async def _load_tag_catalogue(ctx: LessonContext, class_name: str) -> List[str]:
    result = await ctx.reconciler.read(
        tags_flat_key(class_name),
        TAGS_FLAT_ADAPTER,
        default=lambda: list(DEFAULT_TAG_STATEMENTS),
        fetch=lambda remote: _fetch_tag_catalogue(remote, class_name),
    )
    if result.value:
        return result.value
    structured = ctx.cache.read(tags_structured_key(class_name), TAGS_STRUCTURED_ADAPTER, dict)
    flat = flatten_tags(structured or {})
    return flat or list(DEFAULT_TAG_STATEMENTS)


async def _load_plans(ctx: LessonContext) -> List[LessonPlan]:
    result = await ctx.reconciler.read(LESSON_PLANS_KEY, PLANS_ADAPTER, default=list, fetch=_fetch_plans)
    return result.value or []


async def _load_activities(ctx: LessonContext, bundle: LessonBundle) -> List[Activity]:
    result = await ctx.reconciler.read(
        LIBRARY_ACTIVITIES_KEY,
        ACTIVITIES_ADAPTER,
        default=list,
        fetch=_fetch_activities,
    )
    if result.value is not None:
        return result.value

    extracted = extract_unique_activities(bundle.lessons)
    if extracted:
        _store_activities(ctx, extracted, upsert=extracted)
        LOGGER.info("Built activity catalogue from lessons", extra={"activities": len(extracted)})
    return extracted


# ----------------------------------------------------------------------
# Persistence helpers


def _store_bundle(ctx: LessonContext, class_name: str, bundle: LessonBundle) -> LessonBundle:
    bundle = bundle.model_copy(update={"revision": bundle.revision + 1})
    row = bundle_to_row(class_name, bundle)
    ctx.reconciler.write(
        lesson_data_key(class_name),
        BUNDLE_ADAPTER,
        bundle,
        mirror=lambda remote: remote.upsert_lessons(row),
        revision=bundle.revision,
    )
    return bundle


def _replace_bundle(ctx: LessonContext, bundle: LessonBundle) -> LessonBundle:
    stored = _store_bundle(ctx, ctx.class_name, bundle)
    ctx.snapshot = ctx.snapshot.model_copy(update={"bundle": stored})
    return stored


def _persist_class(ctx: LessonContext, snapshot: RegistrySnapshot) -> RegistrySnapshot:
    """Write a class's bundle, units and half-terms together and mirror the bundle."""

    class_name = snapshot.class_name
    bundle = snapshot.bundle.model_copy(update={"revision": snapshot.bundle.revision + 1})
    ctx.cache.write_many(
        [
            (lesson_data_key(class_name), BUNDLE_ADAPTER, bundle),
            (units_key(class_name), UNITS_ADAPTER, snapshot.units),
            (half_terms_key(class_name), HALF_TERMS_ADAPTER, snapshot.half_terms),
        ]
    )
    row = bundle_to_row(class_name, bundle)
    ctx.reconciler.mirror(
        lesson_data_key(class_name),
        lambda remote: remote.upsert_lessons(row),
        revision=bundle.revision,
    )
    return snapshot.model_copy(update={"bundle": bundle})


def _store_plans(
    ctx: LessonContext,
    plans: Sequence[LessonPlan],
    *,
    upsert: Sequence[LessonPlan] = (),
    deleted: Sequence[str] = (),
) -> None:
    ctx.reconciler.write(LESSON_PLANS_KEY, PLANS_ADAPTER, list(plans))
    for plan_id in deleted:
        ctx.reconciler.mirror(f"plan:{plan_id}", _plan_deletion(plan_id))
    rows = [plan_to_row(plan) for plan in upsert]
    if rows:
        ctx.reconciler.mirror(LESSON_PLANS_KEY, lambda remote: remote.upsert_lesson_plans(rows))


def _plan_deletion(plan_id: str):
    return lambda remote: remote.delete_lesson_plan(plan_id)


def _store_activities(ctx: LessonContext, activities: Sequence[Activity], *, upsert: Sequence[Activity] = ()) -> None:
    rows = [activity_to_row(activity) for activity in upsert]
    ctx.reconciler.write(
        LIBRARY_ACTIVITIES_KEY,
        ACTIVITIES_ADAPTER,
        list(activities),
        mirror=(lambda remote: remote.upsert_activities(rows)) if rows else None,
    )


async def _class_snapshot(
    ctx: LessonContext, class_name: str, plans: Sequence[LessonPlan]
) -> tuple[RegistrySnapshot, bool]:
    """Read another class the way ``load_class`` would, without seeding it.

    The flag is False when no store holds a bundle for the class.
    """

    result = await ctx.reconciler.read(
        lesson_data_key(class_name),
        BUNDLE_ADAPTER,
        default=LessonBundle,
        fetch=lambda remote: _fetch_bundle(remote, class_name),
    )
    bundle = result.value.repaired() if result.value is not None else LessonBundle()
    snapshot = RegistrySnapshot(
        class_name=class_name,
        bundle=bundle,
        units=ctx.cache.read(units_key(class_name), UNITS_ADAPTER, list) or [],
        half_terms=ctx.cache.read(half_terms_key(class_name), HALF_TERMS_ADAPTER, default_half_terms)
        or default_half_terms(),
        plans=list(plans),
    )
    return snapshot, result.value is not None


def _require_lesson(ctx: LessonContext, lesson_number: str) -> LessonData:
    lesson = ctx.snapshot.lessons.get(lesson_number)
    if lesson is None:
        raise LessonNotFoundError(lesson_number)
    return lesson


# ----------------------------------------------------------------------
# Import


def import_table(ctx: LessonContext, rows: Sequence[Sequence[Any]]) -> NormalizedImport:
    """Replace the active class's lessons with a tabular import and merge its activities."""

    snapshot = ctx.snapshot
    normalized = normalize_rows(rows, class_name=snapshot.class_name)
    bundle = assemble_bundle(
        normalized,
        category_priority=ctx.config.category_order,
        revision=snapshot.bundle.revision,
    )
    bundle = _store_bundle(ctx, snapshot.class_name, bundle)
    activities = merge_catalogue(snapshot.activities, normalized.activities)
    _store_activities(ctx, activities, upsert=normalized.activities)
    ctx.snapshot = snapshot.model_copy(update={"bundle": bundle, "activities": activities})
    ctx.record(
        "import",
        f"Imported {len(normalized.activities)} activities into {len(bundle.lessons)} lessons",
        lessons=bundle.lesson_numbers,
        skipped_rows=normalized.skipped_rows,
        catalogue_size=len(activities),
    )
    return normalized


# ----------------------------------------------------------------------
# Deletion


async def delete_lesson_plan(ctx: LessonContext, plan_id: str) -> RenumberResult:
    """Delete a plan and close the numbering gap it leaves in its class.

    A plan from another class renumbers that class as the stores hold it; when
    no store has a bundle for it only the plans are rewritten. Failures after
    the plan was found are logged and leave ``ctx.snapshot`` as it was; cache
    keys written before the failure are not rolled back.
    """

    snapshot = ctx.snapshot
    plan = snapshot.find_plan(plan_id)
    if plan is None:
        raise PlanNotFoundError(plan_id)

    try:
        active = plan.class_name == snapshot.class_name
        if active:
            target, stored = snapshot, True
        else:
            target, stored = await _class_snapshot(ctx, plan.class_name, snapshot.plans)
        result = renumber.delete_lesson_plan(target, plan_id)
        updated = result.snapshot
        if result.removed_number is not None and stored:
            updated = _persist_class(ctx, updated)

        previous = {candidate.id: candidate.lesson_number for candidate in snapshot.plans}
        moved = [candidate for candidate in updated.plans if previous.get(candidate.id) != candidate.lesson_number]
        _store_plans(ctx, updated.plans, upsert=moved, deleted=[plan_id])
    except Exception as exc:
        LOGGER.error(
            "Lesson plan deletion failed",
            extra={"plan_id": plan_id, "class_name": plan.class_name},
            exc_info=exc,
        )
        return RenumberResult(snapshot=snapshot)

    ctx.snapshot = updated if active else snapshot.model_copy(update={"plans": updated.plans})
    ctx.journal.log(
        {
            "stage": "renumber" if result.removed_number else "delete_plan",
            "message": f"Deleted lesson plan {plan_id}",
            "class_name": plan.class_name,
            "payload": {"removed": result.removed_number, "mapping": result.mapping},
        }
    )
    return dataclasses.replace(result, snapshot=ctx.snapshot)


def delete_lesson(ctx: LessonContext, lesson_number: str) -> RenumberResult:
    """Remove one lesson number everywhere without renumbering the others."""

    snapshot = ctx.snapshot
    if lesson_number not in snapshot.lessons and lesson_number not in snapshot.lesson_numbers:
        raise LessonNotFoundError(lesson_number)

    result = renumber.delete_lesson(snapshot, lesson_number)
    updated = _persist_class(ctx, result.snapshot)
    kept = {plan.id for plan in updated.plans}
    _store_plans(ctx, updated.plans, deleted=[plan.id for plan in snapshot.plans if plan.id not in kept])
    ctx.snapshot = updated
    ctx.record("delete_lesson", f"Deleted lesson {lesson_number}", removed=lesson_number)
    return dataclasses.replace(result, snapshot=updated)


# ----------------------------------------------------------------------
# Lesson edits


def update_lesson_title(ctx: LessonContext, lesson_number: str, title: str) -> LessonData:
    lesson = _require_lesson(ctx, lesson_number).model_copy(update={"title": title})
    bundle = ctx.snapshot.bundle
    _replace_bundle(ctx, bundle.model_copy(update={"lessons": {**bundle.lessons, lesson_number: lesson}}))
    return lesson


def add_tag_to_lesson(ctx: LessonContext, lesson_number: str, tag: str) -> List[str]:
    """Attach a curriculum tag to a lesson; adding an existing tag changes nothing."""

    lesson = _require_lesson(ctx, lesson_number)
    bundle = ctx.snapshot.bundle
    current = bundle.tag_map.get(lesson_number, [])
    if tag in current and tag in lesson.tags:
        return current
    tags = current if tag in current else [*current, tag]
    lesson_tags = lesson.tags if tag in lesson.tags else [*lesson.tags, tag]
    _replace_bundle(
        ctx,
        bundle.model_copy(
            update={
                "tag_map": {**bundle.tag_map, lesson_number: tags},
                "lessons": {**bundle.lessons, lesson_number: lesson.model_copy(update={"tags": lesson_tags})},
            }
        ),
    )
    return tags


def remove_tag_from_lesson(ctx: LessonContext, lesson_number: str, tag: str) -> List[str]:
    lesson = _require_lesson(ctx, lesson_number)
    bundle = ctx.snapshot.bundle
    tags = [existing for existing in bundle.tag_map.get(lesson_number, []) if existing != tag]
    lesson_tags = [existing for existing in lesson.tags if existing != tag]
    _replace_bundle(
        ctx,
        bundle.model_copy(
            update={
                "tag_map": {**bundle.tag_map, lesson_number: tags},
                "lessons": {**bundle.lessons, lesson_number: lesson.model_copy(update={"tags": lesson_tags})},
            }
        ),
    )
    return tags


def update_tag_catalogue(ctx: LessonContext, statements: Sequence[str]) -> Dict[str, List[str]]:
    """Replace the class's tag catalogue; returns the structured view."""

    class_name = ctx.class_name
    statements = list(statements)
    structured = structure_tags(statements)
    ctx.cache.write_many(
        [
            (tags_flat_key(class_name), TAGS_FLAT_ADAPTER, statements),
            (tags_structured_key(class_name), TAGS_STRUCTURED_ADAPTER, structured),
        ]
    )
    row = tags_to_row(class_name, statements)
    ctx.reconciler.mirror(tags_flat_key(class_name), lambda remote: remote.upsert_tag_statements(row))
    ctx.snapshot = ctx.snapshot.model_copy(update={"tag_catalogue": statements})
    return structured


def update_lesson_data(
    ctx: LessonContext,
    lesson_number: str,
    activities: Sequence[Activity],
    *,
    title: str | None = None,
) -> LessonData:
    """Replace a lesson's activities, re-deriving its grouping, order and total time."""

    existing = _require_lesson(ctx, lesson_number)
    lesson = build_lesson(
        activities,
        lesson_number=lesson_number,
        title=title or existing.title,
        tags=existing.tags,
        category_priority=ctx.config.category_order,
    )
    bundle = ctx.snapshot.bundle
    _replace_bundle(ctx, bundle.model_copy(update={"lessons": {**bundle.lessons, lesson_number: lesson}}))
    return lesson


def upsert_lesson_plan(ctx: LessonContext, plan: LessonPlan) -> LessonPlan:
    """Insert or replace a plan; a plan bound to a lesson rebuilds that lesson."""

    now = utc_now()
    snapshot = ctx.snapshot
    existing = snapshot.find_plan(plan.id)
    if existing is None:
        plan = plan.model_copy(update={"created_at": now, "updated_at": now})
        plans = [*snapshot.plans, plan]
    else:
        plan = plan.model_copy(update={"created_at": existing.created_at, "updated_at": now})
        plans = [plan if candidate.id == plan.id else candidate for candidate in snapshot.plans]

    _store_plans(ctx, plans, upsert=[plan])
    ctx.snapshot = snapshot.model_copy(update={"plans": plans})
    if (
        plan.class_name == snapshot.class_name
        and plan.lesson_number
        and parse_lesson_number(plan.lesson_number) is not None
    ):
        _replace_bundle(ctx, promote_plan(ctx.snapshot.bundle, plan, category_priority=ctx.config.category_order))
    return plan


# ----------------------------------------------------------------------
# Units and half-terms


def upsert_unit(ctx: LessonContext, unit: Unit) -> Unit:
    now = utc_now()
    units = list(ctx.snapshot.units)
    for index, existing in enumerate(units):
        if existing.id == unit.id:
            unit = unit.model_copy(update={"created_at": existing.created_at, "updated_at": now})
            units[index] = unit
            break
    else:
        unit = unit.model_copy(update={"created_at": now, "updated_at": now})
        units.append(unit)
    ctx.cache.write(units_key(ctx.class_name), UNITS_ADAPTER, units)
    ctx.snapshot = ctx.snapshot.model_copy(update={"units": units})
    return unit


def delete_unit(ctx: LessonContext, unit_id: str) -> None:
    units = [unit for unit in ctx.snapshot.units if unit.id != unit_id]
    if len(units) == len(ctx.snapshot.units):
        raise UnitNotFoundError(unit_id)
    ctx.cache.write(units_key(ctx.class_name), UNITS_ADAPTER, units)
    ctx.snapshot = ctx.snapshot.model_copy(update={"units": units})


def update_half_term(
    ctx: LessonContext,
    half_term_id: str,
    lessons: Sequence[str],
    is_complete: bool,
) -> HalfTerm:
    updated: Optional[HalfTerm] = None
    half_terms: List[HalfTerm] = []
    for term in ctx.snapshot.half_terms:
        if term.id == half_term_id:
            term = term.model_copy(update={"lessons": list(lessons), "is_complete": is_complete})
            updated = term
        half_terms.append(term)
    if updated is None:
        raise HalfTermNotFoundError(half_term_id)
    ctx.cache.write(half_terms_key(ctx.class_name), HALF_TERMS_ADAPTER, half_terms)
    ctx.snapshot = ctx.snapshot.model_copy(update={"half_terms": half_terms})
    return updated


def lessons_for_half_term(ctx: LessonContext, half_term_id: str) -> List[str]:
    for term in ctx.snapshot.half_terms:
        if term.id == half_term_id:
            return list(term.lessons)
    return []


# ----------------------------------------------------------------------
# Library listing


def _matches(number: str, lesson: LessonData, query: str) -> bool:
    if query in number:
        return True
    needle = query.lower()
    if lesson.title and needle in lesson.title.lower():
        return True
    for activity in lesson.activities():
        if needle in activity.name.lower():
            return True
        if needle in _HTML_TAG.sub("", activity.description).lower():
            return True
    return False


def search_lessons(
    ctx: LessonContext,
    query: str = "",
    *,
    half_term: str | None = None,
    sort_by: SortKey = "number",
    descending: bool = False,
) -> List[str]:
    """Lesson numbers matching ``query`` (number, title, activity name or description)."""

    snapshot = ctx.snapshot
    numbers: List[str] = []
    for number in snapshot.lesson_numbers:
        lesson = snapshot.lessons.get(number)
        if lesson is None:
            continue
        if query and not _matches(number, lesson, query):
            continue
        if half_term is not None and snapshot.half_term_for(number) != half_term:
            continue
        numbers.append(number)

    def key(number: str) -> Any:
        lesson = snapshot.lessons[number]
        if sort_by == "title":
            return lesson.title or f"Lesson {number}"
        if sort_by == "activities":
            return lesson.activity_count
        if sort_by == "time":
            return lesson.total_minutes
        return parse_lesson_number(number) or 0

    return sorted(numbers, key=key, reverse=descending)


# ----------------------------------------------------------------------
# Activity catalogue


def _local_id(existing: Sequence[Activity]) -> str:
    taken = {activity.id for activity in existing}
    stamp = time.time_ns() // 1_000_000
    while f"{LOCAL_ID_PREFIX}{stamp}" in taken:
        stamp += 1
    return f"{LOCAL_ID_PREFIX}{stamp}"


def _is_remote_id(activity_id: str) -> bool:
    return bool(activity_id) and not activity_id.startswith(LOCAL_ID_PREFIX)


async def add_activity(ctx: LessonContext, activity: Activity) -> Activity:
    """Create an activity remotely when possible, otherwise under a local id.

    An existing entry with the same (name, category, lesson number) is replaced
    in place.
    """

    created: Activity | None = None
    remote = ctx.remote
    if remote is not None:
        try:
            created = row_to_activity(await remote.create_activity(activity_to_row(activity)))
        except REMOTE_FAILURES as exc:
            LOGGER.warning("Remote activity create failed; keeping it local", extra={"error": str(exc)})
    if created is None:
        match = next(
            (existing for existing in ctx.snapshot.activities if existing.identity_key == activity.identity_key),
            None,
        )
        activity_id = match.id if match is not None else _local_id(ctx.snapshot.activities)
        created = activity.model_copy(update={"id": activity_id})

    activities = merge_catalogue(ctx.snapshot.activities, [created])
    _store_activities(ctx, activities)
    ctx.snapshot = ctx.snapshot.model_copy(update={"activities": activities})
    return created


async def update_activity(ctx: LessonContext, activity: Activity) -> Activity:
    if not any(existing.id == activity.id for existing in ctx.snapshot.activities):
        raise ActivityNotFoundError(activity.id)

    updated = activity
    remote = ctx.remote
    if remote is not None and _is_remote_id(activity.id):
        try:
            updated = row_to_activity(await remote.update_activity(activity.id, activity_to_row(activity)))
        except REMOTE_FAILURES as exc:
            LOGGER.warning("Remote activity update failed", extra={"activity_id": activity.id, "error": str(exc)})

    activities = [
        updated if existing.id == activity.id else existing
        for existing in ctx.snapshot.activities
        if existing.id == activity.id or existing.identity_key != updated.identity_key
    ]
    _store_activities(ctx, activities)
    ctx.snapshot = ctx.snapshot.model_copy(update={"activities": activities})
    return updated


async def delete_activity(ctx: LessonContext, activity_id: str) -> None:
    activities = [existing for existing in ctx.snapshot.activities if existing.id != activity_id]
    if len(activities) == len(ctx.snapshot.activities):
        raise ActivityNotFoundError(activity_id)

    remote = ctx.remote
    if remote is not None and _is_remote_id(activity_id):
        try:
            await remote.delete_activity(activity_id)
        except REMOTE_FAILURES as exc:
            LOGGER.warning("Remote activity delete failed", extra={"activity_id": activity_id, "error": str(exc)})

    _store_activities(ctx, activities)
    ctx.snapshot = ctx.snapshot.model_copy(update={"activities": activities})


# ----------------------------------------------------------------------
# Remote-only


async def export_remote_snapshot(ctx: LessonContext) -> Dict[str, List[Dict[str, Any]]]:
    """Return every remote collection; requires a configured remote store."""

    if ctx.remote is None:
        raise RemoteNotConfiguredError("Remote store is not configured")
    return await ctx.remote.export_all()


__all__ = [
    "ActivityNotFoundError",
    "HalfTermNotFoundError",
    "LessonNotFoundError",
    "PlanNotFoundError",
    "UnitNotFoundError",
    "add_activity",
    "add_tag_to_lesson",
    "delete_activity",
    "delete_lesson",
    "delete_lesson_plan",
    "delete_unit",
    "export_remote_snapshot",
    "import_table",
    "lessons_for_half_term",
    "load_class",
    "remove_tag_from_lesson",
    "search_lessons",
    "update_activity",
    "update_half_term",
    "update_lesson_data",
    "update_lesson_title",
    "update_tag_catalogue",
    "upsert_lesson_plan",
    "upsert_unit",
]
