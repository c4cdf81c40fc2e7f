import random
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from lessonsync.models import Activity, HalfTerm, LessonBundle, LessonPlan, Unit, default_half_terms
from lessonsync.registry import RegistrySnapshot, build_lesson, delete_lesson, delete_lesson_plan
from lessonsync.registry.renumber import plan_contiguous_numbers, remap_numbers

NOW = datetime(2024, 10, 1, 12, 0, tzinfo=timezone.utc)
EARLIER = datetime(2024, 9, 1, 12, 0, tzinfo=timezone.utc)


def _plan(plan_id: str, number: Optional[str], class_name: str = "LKG") -> LessonPlan:
    return LessonPlan(
        id=plan_id,
        date=EARLIER,
        class_name=class_name,
        lesson_number=number,
        created_at=EARLIER,
        updated_at=EARLIER,
    )


def _bundle(numbers: List[str]) -> LessonBundle:
    lessons = {
        number: build_lesson(
            [Activity(name=f"Song {number}", category="Welcome")],
            lesson_number=number,
            title=f"Lesson {number}",
        )
        for number in numbers
    }
    return LessonBundle(
        lessons=lessons,
        lesson_numbers=list(numbers),
        teaching_units=["Welcome"],
        tag_map={number: [f"tag-{number}"] for number in numbers},
    )


def _snapshot(numbers: List[str], *, half_terms: List[HalfTerm] | None = None, units: List[Unit] | None = None) -> RegistrySnapshot:
    return RegistrySnapshot(
        class_name="LKG",
        bundle=_bundle(numbers),
        plans=[_plan(f"plan-{number}", number) for number in numbers],
        half_terms=half_terms if half_terms is not None else default_half_terms(),
        units=units or [],
    )


def _numbers_by_plan(snapshot: RegistrySnapshot) -> Dict[str, Optional[str]]:
    return {plan.id: plan.lesson_number for plan in snapshot.plans}


def test_deleting_plan_two_of_four_renumbers_survivors() -> None:
    snapshot = _snapshot(["1", "2", "3", "4"])
    result = delete_lesson_plan(snapshot, "plan-2", now=NOW)
    updated = result.snapshot

    assert result.removed_number == "2"
    assert result.mapping == {"3": "2", "4": "3"}
    assert _numbers_by_plan(updated) == {"plan-1": "1", "plan-3": "2", "plan-4": "3"}
    assert updated.lesson_numbers == ["1", "2", "3"]
    assert sorted(updated.lessons) == ["1", "2", "3"]
    assert updated.lessons["2"].title == "Lesson 3"
    assert updated.lessons["3"].title == "Lesson 4"
    for number, lesson in updated.lessons.items():
        assert all(activity.lesson_number == number for activity in lesson.activities())
    assert updated.tag_map == {"1": ["tag-1"], "2": ["tag-3"], "3": ["tag-4"]}


def test_renumbered_plans_get_fresh_timestamps_only_when_moved() -> None:
    result = delete_lesson_plan(_snapshot(["1", "2", "3"]), "plan-2", now=NOW)
    plans = {plan.id: plan for plan in result.snapshot.plans}
    assert plans["plan-1"].updated_at == EARLIER
    assert plans["plan-3"].updated_at == NOW


def test_half_terms_and_units_follow_the_renumbering() -> None:
    half_terms = default_half_terms()
    half_terms[0] = half_terms[0].model_copy(update={"lessons": ["1", "2"]})
    half_terms[1] = half_terms[1].model_copy(update={"lessons": ["3", "4"]})
    units = [
        Unit(id="u1", name="Rhythm", lesson_numbers=["2", "4"], updated_at=EARLIER),
        Unit(id="u2", name="Intro", lesson_numbers=["1"], updated_at=EARLIER),
    ]
    result = delete_lesson_plan(_snapshot(["1", "2", "3", "4"], half_terms=half_terms, units=units), "plan-2", now=NOW)
    updated = result.snapshot

    assert updated.half_terms[0].lessons == ["1"]
    assert updated.half_terms[1].lessons == ["2", "3"]
    assert updated.units[0].lesson_numbers == ["3"]
    assert updated.units[0].updated_at == NOW
    assert updated.units[1].lesson_numbers == ["1"]
    assert updated.units[1].updated_at == EARLIER


def test_deleting_the_last_plan_needs_no_mapping() -> None:
    result = delete_lesson_plan(_snapshot(["1", "2", "3"]), "plan-3", now=NOW)
    assert result.mapping == {}
    assert result.snapshot.lesson_numbers == ["1", "2"]
    assert "3" not in result.snapshot.tag_map


def test_unbound_plan_deletion_only_removes_the_plan() -> None:
    snapshot = _snapshot(["1", "2"])
    snapshot = snapshot.model_copy(update={"plans": [*snapshot.plans, _plan("loose", None)]})
    result = delete_lesson_plan(snapshot, "loose", now=NOW)

    assert result.deleted_plan is not None
    assert result.removed_number is None
    assert result.snapshot.bundle == snapshot.bundle
    assert [plan.id for plan in result.snapshot.plans] == ["plan-1", "plan-2"]


def test_non_numeric_plan_label_counts_as_unbound() -> None:
    snapshot = _snapshot(["1"])
    snapshot = snapshot.model_copy(update={"plans": [*snapshot.plans, _plan("odd", "Extra")]})
    result = delete_lesson_plan(snapshot, "odd", now=NOW)
    assert result.removed_number is None
    assert result.snapshot.lesson_numbers == ["1"]


def test_unknown_plan_leaves_snapshot_untouched() -> None:
    snapshot = _snapshot(["1", "2"])
    result = delete_lesson_plan(snapshot, "missing", now=NOW)
    assert result.snapshot is snapshot
    assert not result.changed


def test_plans_in_other_classes_are_not_renumbered() -> None:
    snapshot = _snapshot(["1", "2", "3"])
    other = [_plan("ukg-2", "2", class_name="UKG"), _plan("ukg-3", "3", class_name="UKG")]
    snapshot = snapshot.model_copy(update={"plans": [*snapshot.plans, *other]})
    result = delete_lesson_plan(snapshot, "plan-1", now=NOW)
    numbers = _numbers_by_plan(result.snapshot)
    assert numbers["ukg-2"] == "2"
    assert numbers["ukg-3"] == "3"
    assert numbers["plan-2"] == "1"


def test_deleting_a_plan_from_another_class_leaves_the_active_bundle() -> None:
    snapshot = _snapshot(["1", "2"])
    snapshot = snapshot.model_copy(
        update={"plans": [*snapshot.plans, _plan("ukg-1", "1", "UKG"), _plan("ukg-2", "2", "UKG")]}
    )
    result = delete_lesson_plan(snapshot, "ukg-1", now=NOW)
    assert result.snapshot.bundle == snapshot.bundle
    assert _numbers_by_plan(result.snapshot)["ukg-2"] == "1"


@pytest.mark.parametrize("seed", range(5))
def test_any_deletion_sequence_keeps_numbers_contiguous(seed: int) -> None:
    rng = random.Random(seed)
    snapshot = _snapshot([str(number) for number in range(1, 9)])
    original_order = [plan.id for plan in snapshot.plans]

    while snapshot.plans:
        victim = rng.choice(snapshot.plans).id
        snapshot = delete_lesson_plan(snapshot, victim, now=NOW).snapshot
        survivors = snapshot.class_plans()
        numbers = sorted(int(plan.lesson_number) for plan in survivors)
        assert numbers == list(range(1, len(survivors) + 1))
        by_number = sorted(survivors, key=lambda plan: int(plan.lesson_number))
        expected = [plan_id for plan_id in original_order if plan_id in {plan.id for plan in survivors}]
        assert [plan.id for plan in by_number] == expected
        assert snapshot.lesson_numbers == [str(number) for number in range(1, len(survivors) + 1)]


def test_duplicate_plan_numbers_share_a_slot() -> None:
    plans = [_plan("a", "1"), _plan("b", "3"), _plan("c", "3")]
    mapping, assigned = plan_contiguous_numbers(plans, "LKG")
    assert assigned == {"a": "1", "b": "2", "c": "3"}
    assert mapping == {"3": "2"}


def test_remap_numbers_drops_removed_and_translates() -> None:
    assert remap_numbers(["1", "2", "3"], {"3": "2"}, "2") == ["1", "2"]


def test_plain_lesson_deletion_does_not_renumber() -> None:
    half_terms = default_half_terms()
    half_terms[0] = half_terms[0].model_copy(update={"lessons": ["1", "2", "3"]})
    units = [Unit(id="u1", name="Rhythm", lesson_numbers=["2", "3"], updated_at=EARLIER)]
    snapshot = _snapshot(["1", "2", "3"], half_terms=half_terms, units=units)
    result = delete_lesson(snapshot, "2", now=NOW)
    updated = result.snapshot

    assert updated.lesson_numbers == ["1", "3"]
    assert sorted(updated.lessons) == ["1", "3"]
    assert "2" not in updated.tag_map
    assert updated.half_terms[0].lessons == ["1", "3"]
    assert updated.units[0].lesson_numbers == ["3"]
    assert _numbers_by_plan(updated) == {"plan-1": "1", "plan-3": "3"}
    assert result.mapping == {}
