"""Typed records shared by the cache, the remote mirror and the lesson registry."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_lesson_number(value: Any) -> int | None:
    """Return the leading integer of a lesson label, or None when there is none."""

    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(str(value))
    if not match:
        return None
    return int(match.group(1))


def lesson_number_sort_key(value: str) -> Tuple[int, int, str]:
    parsed = parse_lesson_number(value)
    if parsed is None:
        return (1, 0, str(value))
    return (0, parsed, str(value))


def sort_lesson_numbers(numbers: Iterable[str]) -> List[str]:
    """Sort lesson labels numerically ("10" after "9"), unparseable labels last."""

    return sorted(dict.fromkeys(numbers), key=lesson_number_sort_key)


def coerce_minutes(value: Any) -> int:
    """Parse a duration as a non-negative whole number of minutes, defaulting to 0."""

    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value if value >= 0 else 0
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")) or value < 0:
            return 0
        return int(value)
    # Leading digits win, so "15 mins" and "15.0" both read as 15.
    match = _LEADING_INT.match(str(value))
    if not match:
        return 0
    parsed = int(match.group(1))
    return parsed if parsed >= 0 else 0


class Record(BaseModel):
    """Base for stored records: immutable, tolerant of unknown keys."""

    model_config = ConfigDict(frozen=True, extra="ignore")


class MediaLinks(Record):
    video: str = ""
    music: str = ""
    backing: str = ""
    resource: str = ""
    image: str = ""
    vocals: str = ""
    link: str = ""


class Activity(Record):
    id: str = ""
    name: str
    description: str = ""
    duration_minutes: int = 0
    media: MediaLinks = Field(default_factory=MediaLinks)
    category: str
    level: str = ""
    unit_name: str = ""
    lesson_number: str = ""
    tags: List[str] = Field(default_factory=list)

    @field_validator("duration_minutes", mode="before")
    @classmethod
    def _coerce_duration(cls, value: Any) -> int:
        return coerce_minutes(value)

    @field_validator("lesson_number", mode="before")
    @classmethod
    def _stringify_number(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @property
    def identity_key(self) -> Tuple[str, str, str]:
        return (self.name, self.category, self.lesson_number)


class LessonData(Record):
    grouped: Dict[str, List[Activity]] = Field(default_factory=dict)
    category_order: List[str] = Field(default_factory=list)
    total_minutes: int = 0
    title: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    def activities(self) -> List[Activity]:
        """Flatten the grouping, honouring category_order first."""

        ordered = list(self.category_order)
        ordered.extend(category for category in self.grouped if category not in ordered)
        flattened: List[Activity] = []
        for category in ordered:
            flattened.extend(self.grouped.get(category, []))
        return flattened

    @property
    def activity_count(self) -> int:
        return sum(len(items) for items in self.grouped.values())


PlanStatus = Literal["planned", "completed", "cancelled", "draft"]


class LessonPlan(Record):
    id: str
    date: datetime
    week: int = 0
    class_name: str
    activities: List[Activity] = Field(default_factory=list)
    duration_minutes: int = 0
    notes: str = ""
    status: PlanStatus = "planned"
    unit_id: Optional[str] = None
    unit_name: Optional[str] = None
    lesson_number: Optional[str] = None
    title: Optional[str] = None
    term: Optional[str] = None
    time: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("lesson_number", mode="before")
    @classmethod
    def _blank_is_unbound(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("duration_minutes", mode="before")
    @classmethod
    def _coerce_duration(cls, value: Any) -> int:
        return coerce_minutes(value)


class Unit(Record):
    id: str
    name: str
    description: str = ""
    lesson_numbers: List[str] = Field(default_factory=list)
    color: str = "#6b7280"
    term: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class HalfTerm(Record):
    id: str
    name: str
    months: str
    lessons: List[str] = Field(default_factory=list)
    is_complete: bool = False


DEFAULT_HALF_TERMS: Tuple[HalfTerm, ...] = (
    HalfTerm(id="A1", name="Autumn 1", months="Sep-Oct"),
    HalfTerm(id="A2", name="Autumn 2", months="Nov-Dec"),
    HalfTerm(id="SP1", name="Spring 1", months="Jan-Feb"),
    HalfTerm(id="SP2", name="Spring 2", months="Mar-Apr"),
    HalfTerm(id="SM1", name="Summer 1", months="Apr-May"),
    HalfTerm(id="SM2", name="Summer 2", months="Jun-Jul"),
)


def default_half_terms() -> List[HalfTerm]:
    return list(DEFAULT_HALF_TERMS)


class LessonBundle(Record):
    """Per-class lesson table plus its derived indexes."""

    lessons: Dict[str, LessonData] = Field(default_factory=dict)
    lesson_numbers: List[str] = Field(default_factory=list)
    teaching_units: List[str] = Field(default_factory=list)
    tag_map: Dict[str, List[str]] = Field(default_factory=dict)
    revision: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.lessons and not self.lesson_numbers

    def repaired(self) -> "LessonBundle":
        """Return a copy whose indexes agree with the lesson table."""

        lessons: Dict[str, LessonData] = {}
        for number, lesson in self.lessons.items():
            if all(activity.lesson_number == number for activity in lesson.activities()):
                lessons[number] = lesson
                continue
            grouped = {
                category: [item.model_copy(update={"lesson_number": number}) for item in items]
                for category, items in lesson.grouped.items()
            }
            lessons[number] = lesson.model_copy(update={"grouped": grouped})
        return self.model_copy(
            update={
                "lessons": lessons,
                "lesson_numbers": sort_lesson_numbers(lessons.keys()),
            }
        )


DEFAULT_TAG_STATEMENTS: Tuple[str, ...] = (
    "Communication and Language: Listens carefully to rhymes and songs",
    "Communication and Language: Enjoys singing and making sounds",
    "Communication and Language: Joins in with familiar songs and rhymes",
    "Communication and Language: Understands and responds to simple questions or instructions",
    "Communication and Language: Uses talk to express ideas and feelings",
    "Listening, Attention and Understanding: Listens with increased attention to sounds",
    "Listening, Attention and Understanding: Responds to what they hear with relevant actions",
    "Listening, Attention and Understanding: Follows directions with two or more steps",
    "Listening, Attention and Understanding: Understands simple concepts such as in, on, under",
    "Speaking: Begins to use longer sentences",
    "Speaking: Retells events or experiences in sequence",
    "Speaking: Uses new vocabulary in different contexts",
    "Speaking: Talks about what they are doing or making",
    "Personal, Social and Emotional Development: Shows confidence to try new activities",
    "Personal, Social and Emotional Development: Takes turns and shares with others",
    "Personal, Social and Emotional Development: Expresses own feelings and considers others'",
    "Personal, Social and Emotional Development: Shows resilience and perseverance",
    "Physical Development: Moves energetically, e.g., running, jumping, dancing",
    "Physical Development: Uses large and small motor skills for coordinated movement",
    "Physical Development: Moves with control and coordination",
    "Physical Development: Shows strength, balance and coordination",
    "Expressive Arts and Design: Creates collaboratively, sharing ideas and resources",
    "Expressive Arts and Design: Explores the sounds of instruments",
    "Expressive Arts and Design: Sings a range of well-known nursery rhymes and songs",
    "Expressive Arts and Design: Performs songs, rhymes, poems and stories with others",
    "Expressive Arts and Design: Responds imaginatively to music and dance",
    "Expressive Arts and Design: Develops storylines in pretend play",
)


def structure_tags(statements: Iterable[str]) -> Dict[str, List[str]]:
    """Group "Area: Detail" tags by area; tags without a colon file under themselves."""

    structured: Dict[str, List[str]] = {}
    for statement in statements:
        area, sep, detail = statement.partition(":")
        area = area.strip()
        detail = detail.strip() if sep else statement
        structured.setdefault(area, []).append(detail)
    return structured


def flatten_tags(structured: Dict[str, List[str]]) -> List[str]:
    return [f"{area}: {detail}" for area, details in structured.items() for detail in details]


__all__ = [
    "Activity",
    "DEFAULT_HALF_TERMS",
    "DEFAULT_TAG_STATEMENTS",
    "HalfTerm",
    "LessonBundle",
    "LessonData",
    "LessonPlan",
    "MediaLinks",
    "PlanStatus",
    "Unit",
    "coerce_minutes",
    "default_half_terms",
    "flatten_tags",
    "lesson_number_sort_key",
    "parse_lesson_number",
    "sort_lesson_numbers",
    "structure_tags",
    "utc_now",
]
