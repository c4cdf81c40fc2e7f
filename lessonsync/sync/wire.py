"""Row shapes exchanged with the remote store."""

from __future__ import annotations

from typing import Any, Dict, List

from lessonsync.models import Activity, LessonBundle, LessonPlan, MediaLinks, structure_tags

MEDIA_COLUMNS = {
    "video": "video_link",
    "music": "music_link",
    "backing": "backing_link",
    "resource": "resource_link",
    "image": "image_link",
    "vocals": "vocals_link",
    "link": "link",
}


def activity_to_row(activity: Activity) -> Dict[str, Any]:
    """Row without the id; the remote assigns its own and activities upsert on identity."""

    row: Dict[str, Any] = {
        "name": activity.name,
        "description": activity.description,
        "duration_minutes": activity.duration_minutes,
        "category": activity.category,
        "level": activity.level,
        "unit_name": activity.unit_name,
        "lesson_number": activity.lesson_number,
        "tags": list(activity.tags),
    }
    for field_name, column in MEDIA_COLUMNS.items():
        row[column] = getattr(activity.media, field_name)
    return row


def row_to_activity(row: Dict[str, Any]) -> Activity:
    media = MediaLinks(**{field_name: row.get(column) or "" for field_name, column in MEDIA_COLUMNS.items()})
    return Activity(
        id=str(row.get("id") or ""),
        name=row.get("name") or "",
        description=row.get("description") or "",
        duration_minutes=row.get("duration_minutes"),
        media=media,
        category=row.get("category") or "",
        level=row.get("level") or "",
        unit_name=row.get("unit_name") or "",
        lesson_number=row.get("lesson_number"),
        tags=row.get("tags") or [],
    )


def bundle_to_row(class_name: str, bundle: LessonBundle) -> Dict[str, Any]:
    payload = bundle.model_dump(mode="json")
    return {
        "class_name": class_name,
        "lessons": payload["lessons"],
        "lesson_numbers": payload["lesson_numbers"],
        "teaching_units": payload["teaching_units"],
        "tag_map": payload["tag_map"],
        "revision": payload["revision"],
    }


def row_to_bundle(row: Dict[str, Any]) -> LessonBundle:
    bundle = LessonBundle.model_validate(
        {
            "lessons": row.get("lessons") or {},
            "lesson_numbers": row.get("lesson_numbers") or [],
            "teaching_units": row.get("teaching_units") or [],
            "tag_map": row.get("tag_map") or {},
            "revision": row.get("revision") or 0,
        }
    )
    return bundle.repaired()


def plan_to_row(plan: LessonPlan) -> Dict[str, Any]:
    return plan.model_dump(mode="json")


def row_to_plan(row: Dict[str, Any]) -> LessonPlan:
    return LessonPlan.model_validate(row)


def tags_to_row(class_name: str, statements: List[str]) -> Dict[str, Any]:
    return {
        "class_name": class_name,
        "all_statements": list(statements),
        "structured_statements": structure_tags(statements),
    }


__all__ = [
    "activity_to_row",
    "bundle_to_row",
    "plan_to_row",
    "row_to_activity",
    "row_to_bundle",
    "row_to_plan",
    "tags_to_row",
]
