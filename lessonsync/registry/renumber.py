"""Keep lesson-number references consistent when lessons or lesson plans are deleted.

Deleting a plan bound to lesson N renumbers the class's remaining bound plans to
1..K (preserving their order) and carries the old -> new mapping through the
lesson table, the lesson-number index, the tag map, every half-term and every
unit. Deleting a lesson directly only strips references to that number.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, TypeVar

from lessonsync.models import (
    HalfTerm,
    LessonBundle,
    LessonData,
    LessonPlan,
    Unit,
    parse_lesson_number,
    sort_lesson_numbers,
    utc_now,
)

from .state import RegistrySnapshot

LOGGER = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass(frozen=True)
class RenumberResult:
    snapshot: RegistrySnapshot
    deleted_plan: Optional[LessonPlan] = None
    removed_number: Optional[str] = None
    mapping: Dict[str, str] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return self.deleted_plan is not None or self.removed_number is not None


def remap_numbers(numbers: Iterable[str], mapping: Mapping[str, str], removed: str | None) -> List[str]:
    """Drop ``removed`` and translate the survivors through ``mapping``."""

    return [mapping.get(number, number) for number in numbers if number != removed]


def _move_keys(table: Mapping[str, V], mapping: Mapping[str, str], removed: str | None) -> Dict[str, V]:
    # Unmoved entries first so a moved entry wins any collision on its new key.
    moved: Dict[str, V] = {key: value for key, value in table.items() if key != removed and key not in mapping}
    for old, new in mapping.items():
        if old in table and old != removed:
            moved[new] = table[old]
    return moved


def _restamp(lesson: LessonData, number: str) -> LessonData:
    grouped = {
        category: [activity.model_copy(update={"lesson_number": number}) for activity in items]
        for category, items in lesson.grouped.items()
    }
    return lesson.model_copy(update={"grouped": grouped})


def renumber_bundle(bundle: LessonBundle, mapping: Mapping[str, str], removed: str | None) -> LessonBundle:
    lessons = _move_keys(bundle.lessons, mapping, removed)
    for old, new in mapping.items():
        if old in bundle.lessons and old != removed:
            lessons[new] = _restamp(lessons[new], new)
    return bundle.model_copy(
        update={
            "lessons": lessons,
            "lesson_numbers": sort_lesson_numbers(remap_numbers(bundle.lesson_numbers, mapping, removed)),
            "tag_map": _move_keys(bundle.tag_map, mapping, removed),
        }
    )


def renumber_half_terms(half_terms: Iterable[HalfTerm], mapping: Mapping[str, str], removed: str | None) -> List[HalfTerm]:
    return [
        term.model_copy(update={"lessons": remap_numbers(term.lessons, mapping, removed)})
        for term in half_terms
    ]


def renumber_units(
    units: Iterable[Unit],
    mapping: Mapping[str, str],
    removed: str | None,
    *,
    now: datetime,
) -> List[Unit]:
    updated: List[Unit] = []
    for unit in units:
        numbers = remap_numbers(unit.lesson_numbers, mapping, removed)
        if numbers == unit.lesson_numbers:
            updated.append(unit)
        else:
            updated.append(unit.model_copy(update={"lesson_numbers": numbers, "updated_at": now}))
    return updated


def plan_contiguous_numbers(plans: Iterable[LessonPlan], class_name: str) -> tuple[Dict[str, str], Dict[str, str]]:
    """Return (old -> new label mapping, plan id -> new label) for a class.

    Bound plans are ordered by their numeric lesson number (stable on ties) and
    assigned their 1-based position. Only changed labels enter the mapping;
    when two plans share a label the first one's slot is used for it.
    """

    bound = [
        plan
        for plan in plans
        if plan.class_name == class_name and plan.lesson_number and parse_lesson_number(plan.lesson_number) is not None
    ]
    bound.sort(key=lambda plan: parse_lesson_number(plan.lesson_number))

    mapping: Dict[str, str] = {}
    assigned: Dict[str, str] = {}
    for position, plan in enumerate(bound, start=1):
        new_number = str(position)
        assigned[plan.id] = new_number
        # Unchanged labels are pinned too, so a later duplicate cannot remap them.
        mapping.setdefault(plan.lesson_number, new_number)
    return {old: new for old, new in mapping.items() if old != new}, assigned


def delete_lesson_plan(snapshot: RegistrySnapshot, plan_id: str, *, now: datetime | None = None) -> RenumberResult:
    """Remove a plan and, when it was bound to a lesson, close the numbering gap."""

    now = now or utc_now()
    plan = snapshot.find_plan(plan_id)
    if plan is None:
        LOGGER.debug("Lesson plan not found", extra={"plan_id": plan_id})
        return RenumberResult(snapshot=snapshot)

    remaining = [candidate for candidate in snapshot.plans if candidate.id != plan_id]
    deleted_number = parse_lesson_number(plan.lesson_number) if plan.lesson_number else None
    if deleted_number is None:
        return RenumberResult(
            snapshot=snapshot.model_copy(update={"plans": remaining}),
            deleted_plan=plan,
        )

    removed = str(deleted_number)
    mapping, assigned = plan_contiguous_numbers(remaining, plan.class_name)
    plans = [
        candidate.model_copy(update={"lesson_number": assigned[candidate.id], "updated_at": now})
        if candidate.id in assigned and candidate.lesson_number != assigned[candidate.id]
        else candidate
        for candidate in remaining
    ]

    update: Dict[str, object] = {"plans": plans}
    if plan.class_name == snapshot.class_name:
        update.update(
            bundle=renumber_bundle(snapshot.bundle, mapping, removed),
            half_terms=renumber_half_terms(snapshot.half_terms, mapping, removed),
            units=renumber_units(snapshot.units, mapping, removed, now=now),
        )
    LOGGER.info(
        "Renumbered lessons after plan deletion",
        extra={"class_name": plan.class_name, "removed": removed, "mapping": mapping},
    )
    return RenumberResult(
        snapshot=snapshot.model_copy(update=update),
        deleted_plan=plan,
        removed_number=removed,
        mapping=mapping,
    )


def delete_lesson(snapshot: RegistrySnapshot, lesson_number: str, *, now: datetime | None = None) -> RenumberResult:
    """Strip one lesson number from every collection without renumbering the rest."""

    now = now or utc_now()
    bundle = snapshot.bundle
    lessons = {key: value for key, value in bundle.lessons.items() if key != lesson_number}
    tag_map = {key: value for key, value in bundle.tag_map.items() if key != lesson_number}
    bundle = bundle.model_copy(
        update={
            "lessons": lessons,
            "lesson_numbers": [number for number in bundle.lesson_numbers if number != lesson_number],
            "tag_map": tag_map,
        }
    )
    plans = [
        plan
        for plan in snapshot.plans
        if not (plan.class_name == snapshot.class_name and plan.lesson_number == lesson_number)
    ]
    return RenumberResult(
        snapshot=snapshot.model_copy(
            update={
                "bundle": bundle,
                "plans": plans,
                "half_terms": renumber_half_terms(snapshot.half_terms, {}, lesson_number),
                "units": renumber_units(snapshot.units, {}, lesson_number, now=now),
            }
        ),
        removed_number=lesson_number,
    )


__all__ = [
    "RenumberResult",
    "delete_lesson",
    "delete_lesson_plan",
    "plan_contiguous_numbers",
    "remap_numbers",
    "renumber_bundle",
    "renumber_half_terms",
    "renumber_units",
]
