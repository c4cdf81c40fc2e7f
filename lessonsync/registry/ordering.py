"""Category ordering and default lesson titles."""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

from lessonsync.core.config import DEFAULT_CATEGORY_ORDER

# Checked in order once the Welcome/Goodbye bracket rule does not apply.
TITLE_RULES: Tuple[Tuple[str, str], ...] = (
    ("Kodaly Songs", "Kodaly Lesson"),
    ("Rhythm Sticks", "Rhythm Sticks Lesson"),
    ("Percussion Games", "Percussion Lesson"),
    ("Scarf Songs", "Movement with Scarves"),
    ("Parachute Games", "Parachute Activities"),
    ("Action/Games Songs", "Action Games Lesson"),
)

OPENING_CATEGORY = "Welcome"
CLOSING_CATEGORY = "Goodbye"


def sort_categories(categories: Iterable[str], priority: Sequence[str] | None = None) -> List[str]:
    """Listed categories by list position, then the rest alphabetically."""

    order = list(priority if priority is not None else DEFAULT_CATEGORY_ORDER)
    positions = {name: index for index, name in enumerate(order)}

    def key(category: str) -> Tuple[int, int, str]:
        if category in positions:
            return (0, positions[category], category)
        return (1, 0, category)

    return sorted(dict.fromkeys(categories), key=key)


def default_lesson_title(category_order: Sequence[str]) -> str:
    if not category_order:
        return "Untitled Lesson"

    if OPENING_CATEGORY in category_order and CLOSING_CATEGORY in category_order:
        remaining = [cat for cat in category_order if cat not in (OPENING_CATEGORY, CLOSING_CATEGORY)]
        if remaining:
            return f"{remaining[0]} Lesson"
        return "Standard Lesson"

    for category, title in TITLE_RULES:
        if category in category_order:
            return title

    return f"{category_order[0]} Lesson"


__all__ = ["TITLE_RULES", "default_lesson_title", "sort_categories"]
