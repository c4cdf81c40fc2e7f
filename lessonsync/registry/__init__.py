"""Lesson registry: assembly, ordering, snapshots and cross-reference upkeep."""

from .assembly import assemble_bundle, build_lesson, promote_plan
from .ordering import default_lesson_title, sort_categories
from .renumber import RenumberResult, delete_lesson, delete_lesson_plan
from .state import RegistrySnapshot

__all__ = [
    "RegistrySnapshot",
    "RenumberResult",
    "assemble_bundle",
    "build_lesson",
    "default_lesson_title",
    "delete_lesson",
    "delete_lesson_plan",
    "promote_plan",
    "sort_categories",
]
