"""Immutable in-memory view of the active class and the global collections."""

from __future__ import annotations

from typing import Dict, List

from pydantic import Field

from lessonsync.models import (
    DEFAULT_TAG_STATEMENTS,
    Activity,
    HalfTerm,
    LessonBundle,
    LessonData,
    LessonPlan,
    Record,
    Unit,
    default_half_terms,
)


class RegistrySnapshot(Record):
    """One consistent state of the registry; every change yields a new snapshot."""

    class_name: str
    bundle: LessonBundle = Field(default_factory=LessonBundle)
    units: List[Unit] = Field(default_factory=list)
    half_terms: List[HalfTerm] = Field(default_factory=default_half_terms)
    tag_catalogue: List[str] = Field(default_factory=lambda: list(DEFAULT_TAG_STATEMENTS))
    plans: List[LessonPlan] = Field(default_factory=list)
    activities: List[Activity] = Field(default_factory=list)

    @property
    def lessons(self) -> Dict[str, LessonData]:
        return self.bundle.lessons

    @property
    def lesson_numbers(self) -> List[str]:
        return self.bundle.lesson_numbers

    @property
    def tag_map(self) -> Dict[str, List[str]]:
        return self.bundle.tag_map

    def class_plans(self) -> List[LessonPlan]:
        return [plan for plan in self.plans if plan.class_name == self.class_name]

    def find_plan(self, plan_id: str) -> LessonPlan | None:
        for plan in self.plans:
            if plan.id == plan_id:
                return plan
        return None

    def half_term_for(self, lesson_number: str) -> str | None:
        for term in self.half_terms:
            if lesson_number in term.lessons:
                return term.id
        return None


__all__ = ["RegistrySnapshot"]
