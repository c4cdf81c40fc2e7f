"""Turn a rectangular lesson table into Activity records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Sequence

from lessonsync.models import Activity, MediaLinks, coerce_minutes

LOGGER = logging.getLogger(__name__)

# Fixed column positions; row 0 is a header and is discarded.
LESSON_COL = 0
CATEGORY_COL = 1
NAME_COL = 2
DESCRIPTION_COL = 3
LEVEL_COL = 4
DURATION_COL = 5
VIDEO_COL = 6
MUSIC_COL = 7
BACKING_COL = 8
RESOURCE_COL = 9
UNIT_NAME_COL = 10

MIN_ROW_CELLS = 3
DEFAULT_LESSON_NUMBER = "1"


@dataclass
class NormalizedImport:
    activities: List[Activity] = field(default_factory=list)
    lesson_numbers: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    skipped_rows: int = 0


def _cell(row: Sequence[Any], index: int) -> str:
    if index >= len(row):
        return ""
    value = row[index]
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def normalize_rows(rows: Sequence[Sequence[Any]], *, class_name: str) -> NormalizedImport:
    """Convert table rows into activities, carrying lesson numbers forward.

    A lesson-number cell labels every following row until the next non-empty
    label. Rows missing a category or name are skipped; bad durations read as 0.
    """

    result = NormalizedImport()
    if not rows:
        return result

    seen_numbers: dict[str, None] = {}
    seen_categories: dict[str, None] = {}
    current_number = ""

    for index, row in enumerate(rows[1:], start=1):
        if row is None or len(row) < MIN_ROW_CELLS:
            result.skipped_rows += 1
            continue

        label = _cell(row, LESSON_COL)
        category = _cell(row, CATEGORY_COL)
        name = _cell(row, NAME_COL)
        if not category or not name:
            result.skipped_rows += 1
            continue

        if label:
            current_number = label
            seen_numbers.setdefault(label, None)
        seen_categories.setdefault(category, None)

        lesson_number = current_number or DEFAULT_LESSON_NUMBER
        result.activities.append(
            Activity(
                id=f"{class_name}-{lesson_number}-{category}-{name}-{index}",
                name=name,
                description=_cell(row, DESCRIPTION_COL).replace('"', ""),
                duration_minutes=coerce_minutes(_cell(row, DURATION_COL)),
                media=MediaLinks(
                    video=_cell(row, VIDEO_COL),
                    music=_cell(row, MUSIC_COL),
                    backing=_cell(row, BACKING_COL),
                    resource=_cell(row, RESOURCE_COL),
                ),
                category=category,
                level=_cell(row, LEVEL_COL),
                unit_name=_cell(row, UNIT_NAME_COL),
                lesson_number=lesson_number,
            )
        )

    result.lesson_numbers = list(seen_numbers)
    result.categories = list(seen_categories)
    LOGGER.debug(
        "Normalized lesson table",
        extra={
            "class_name": class_name,
            "activities": len(result.activities),
            "skipped_rows": result.skipped_rows,
        },
    )
    return result


__all__ = ["NormalizedImport", "normalize_rows"]
