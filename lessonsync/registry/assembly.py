"""Build LessonData tables from normalized activities or lesson plans."""

from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

from lessonsync.ingest.normalizer import NormalizedImport
from lessonsync.models import (
    Activity,
    LessonBundle,
    LessonData,
    LessonPlan,
    parse_lesson_number,
    sort_lesson_numbers,
)

from .ordering import default_lesson_title, sort_categories


def build_lesson(
    activities: Iterable[Activity],
    *,
    lesson_number: str | None = None,
    title: str | None = None,
    tags: Sequence[str] = (),
    category_priority: Sequence[str] | None = None,
    derive_title: bool = True,
) -> LessonData:
    """Group activities by category and derive order, total time and title.

    When ``lesson_number`` is given every activity is stamped with it.
    """

    grouped: Dict[str, List[Activity]] = {}
    total = 0
    for activity in activities:
        if lesson_number is not None and activity.lesson_number != lesson_number:
            activity = activity.model_copy(update={"lesson_number": lesson_number})
        grouped.setdefault(activity.category, []).append(activity)
        total += activity.duration_minutes

    category_order = sort_categories(grouped.keys(), category_priority)
    if title is None and derive_title:
        title = default_lesson_title(category_order)
    return LessonData(
        grouped=grouped,
        category_order=category_order,
        total_minutes=total,
        title=title,
        tags=list(tags),
    )


def assemble_bundle(
    normalized: NormalizedImport,
    *,
    category_priority: Sequence[str] | None = None,
    revision: int = 0,
) -> LessonBundle:
    """Assemble the per-class lesson table from one import pass.

    Only integer-like lesson labels become lessons; they are ordered
    numerically so "10" follows "9".
    """

    numbers = sort_lesson_numbers(
        number for number in normalized.lesson_numbers if parse_lesson_number(number) is not None
    )
    by_number: Dict[str, List[Activity]] = {number: [] for number in numbers}
    for activity in normalized.activities:
        if activity.lesson_number in by_number:
            by_number[activity.lesson_number].append(activity)

    lessons = {
        number: build_lesson(by_number[number], category_priority=category_priority)
        for number in numbers
    }
    return LessonBundle(
        lessons=lessons,
        lesson_numbers=numbers,
        teaching_units=sorted(normalized.categories),
        tag_map={number: [] for number in numbers},
        revision=revision,
    )


def promote_plan(
    bundle: LessonBundle,
    plan: LessonPlan,
    *,
    category_priority: Sequence[str] | None = None,
) -> LessonBundle:
    """Rebuild the lesson a plan is bound to from the plan's activities."""

    number = plan.lesson_number
    if not number:
        return bundle
    lesson = build_lesson(
        plan.activities,
        lesson_number=number,
        title=plan.title,
        tags=bundle.tag_map.get(number, []),
        category_priority=category_priority,
        derive_title=False,
    )
    lessons = {**bundle.lessons, number: lesson}
    numbers = bundle.lesson_numbers
    if number not in numbers:
        numbers = sort_lesson_numbers([*numbers, number])
    return bundle.model_copy(update={"lessons": lessons, "lesson_numbers": numbers})


__all__ = ["assemble_bundle", "build_lesson", "promote_plan"]
