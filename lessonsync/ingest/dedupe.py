"""Activity catalogue merging and de-duplication."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Tuple

from lessonsync.models import Activity, LessonData, sort_lesson_numbers


def merge_catalogue(existing: Iterable[Activity], incoming: Iterable[Activity]) -> List[Activity]:
    """Merge imported activities into the catalogue keyed by (name, category, lesson number).

    An incoming activity replaces the entry with the same key in place; new keys
    are appended. Merging the same import twice leaves the catalogue unchanged.
    """

    merged: Dict[Tuple[str, str, str], Activity] = {}
    for activity in existing:
        merged[activity.identity_key] = activity
    for activity in incoming:
        merged[activity.identity_key] = activity
    return list(merged.values())


def extract_unique_activities(lessons: Mapping[str, LessonData]) -> List[Activity]:
    """Flatten every lesson's groupings, keeping the first activity per (name, category)."""

    seen: set[Tuple[str, str]] = set()
    unique: List[Activity] = []
    for number in sort_lesson_numbers(lessons.keys()):
        for items in lessons[number].grouped.values():
            for activity in items:
                key = (activity.name, activity.category)
                if key in seen:
                    continue
                seen.add(key)
                unique.append(activity)
    return unique


__all__ = ["extract_unique_activities", "merge_catalogue"]
