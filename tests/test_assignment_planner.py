from __future__ import annotations

from dataclasses import replace
from threading import Event

import pytest

from backend.domain.errors import (
    AssignmentBatchError,
    CapacityExceededError,
    InsufficientDataError,
    PlanningCancelledError,
    RoomNotFoundError,
)
from backend.domain.models import AssignmentStatus, CompatibilityScore, FoodPreference, StudyStyle
from backend.repository.data_repository import DataRepository
from backend.services.assignment_planner import (
    AssignmentPlannerService,
    complete_surveys,
    generate_pairs,
    plan_assignments,
    rank_pairs,
    select_assignments,
    usable_rooms,
)
from backend.services.compatibility_cache import CompatibilityCache
from tests.factories import build_room, build_survey


def _diverse_surveys(count: int):
    bedtimes = ("10:00 PM", "11:00 PM", "12:00 AM", "1:00 AM", "9:30 PM", "2:00 AM", "11:30 PM")
    foods = list(FoodPreference)
    styles = list(StudyStyle)
    return [
        build_survey(
            f"S{index:02d}",
            lifestyle={
                "sleep_time": bedtimes[index % len(bedtimes)],
                "food_preference": foods[index % len(foods)],
                "smoking_habit": index % 3 == 0,
            },
            study_habits={"study_style": styles[index % len(styles)]},
            cleanliness={"organization_level": 1 + index % 5},
            social_preferences={"privacy_needs": 1 + (index * 2) % 5},
            sleep_schedule={"typical_bedtime": bedtimes[index % len(bedtimes)]},
            personality_traits={"introvert_extrovert": 1 + (index * 3) % 5},
        )
        for index in range(count)
    ]


def _score(a: str, b: str, overall: int) -> CompatibilityScore:
    return CompatibilityScore(
        student_a=a,
        student_b=b,
        term="2026-FALL",
        overall_score=overall,
        lifestyle_score=overall,
        study_score=overall,
        cleanliness_score=overall,
        social_score=overall,
        sleep_score=overall,
        personality_score=overall,
    )


def _assert_disjoint(assignments) -> None:
    students = [sid for item in assignments for sid in item.student_ids]
    rooms = [item.room_id for item in assignments]
    assert len(students) == len(set(students))
    assert len(rooms) == len(set(rooms))


# --- Pure planning steps ---

def test_generate_pairs_yields_each_unordered_pair_once() -> None:
    surveys = [build_survey(sid) for sid in "ABCD"]
    pairs = [(a.student_id, b.student_id) for a, b in generate_pairs(surveys)]
    assert pairs == [("A", "B"), ("A", "C"), ("A", "D"), ("B", "C"), ("B", "D"), ("C", "D")]


def test_complete_surveys_filters_incomplete_and_duplicates() -> None:
    surveys = [
        build_survey("A"),
        replace(build_survey("B"), social_preferences=None),
        build_survey("C"),
        build_survey("A", lifestyle={"smoking_habit": True}),
    ]
    kept = complete_surveys(surveys)
    assert [survey.student_id for survey in kept] == ["A", "C"]
    assert kept[0].lifestyle.smoking_habit is False


def test_rank_pairs_is_stable_for_equal_scores() -> None:
    ranked = rank_pairs([_score("A", "B", 70), _score("A", "C", 90), _score("B", "C", 70), _score("C", "D", 90)])
    assert [score.pair for score in ranked] == [("A", "C"), ("C", "D"), ("A", "B"), ("B", "C")]


def test_usable_rooms_keep_order_and_need_two_free_slots() -> None:
    rooms = [
        build_room("R1", capacity=1),
        build_room("R2", capacity=2),
        build_room("R3", capacity=3, occupants=("X", "Y")),
        build_room("R4", capacity=4, occupants=("X",)),
        build_room("R5", capacity=2, occupants=("X", "Y")),
    ]
    assert [room.room_id for room in usable_rooms(rooms)] == ["R2", "R4"]
    assert [room.room_id for room in usable_rooms(rooms, min_capacity=3)] == ["R4"]


def test_select_assignments_skips_pairs_with_placed_students() -> None:
    ranked = rank_pairs([
        _score("A", "B", 95),
        _score("A", "C", 90),
        _score("C", "D", 80),
        _score("B", "D", 99),
    ])
    rooms = [build_room("R1"), build_room("R2"), build_room("R3")]

    assignments = select_assignments(ranked, rooms, "2026-FALL")

    assert [(item.room_id, item.student_ids) for item in assignments] == [
        ("R1", ("B", "D")),
        ("R2", ("A", "C")),
    ]
    assert [item.compatibility_score for item in assignments] == [99, 90]
    assert all(item.status == AssignmentStatus.PENDING_APPROVAL for item in assignments)


def test_select_assignments_breaks_ties_by_generation_order() -> None:
    ranked = rank_pairs([_score("A", "B", 80), _score("A", "C", 80), _score("B", "C", 80)])
    assignments = select_assignments(ranked, [build_room("R1"), build_room("R2")], "2026-FALL")
    assert [item.student_ids for item in assignments] == [("A", "B")]


# --- plan_assignments ---

def test_four_surveys_one_room_pairs_best_match() -> None:
    surveys = [
        build_survey("A"),
        build_survey("B"),
        build_survey(
            "C",
            lifestyle={"smoking_habit": True, "sleep_time": "2:00 AM"},
            cleanliness={"organization_level": 5},
        ),
        build_survey(
            "D",
            study_habits={"study_style": StudyStyle.INTENSE, "needs_quiet_environment": False},
            personality_traits={"introvert_extrovert": 1},
        ),
    ]

    assignments = plan_assignments(surveys, [build_room("R1")], CompatibilityCache())

    assert len(assignments) == 1
    assert assignments[0].room_id == "R1"
    assert set(assignments[0].student_ids) == {"A", "B"}
    assert assignments[0].compatibility_score == 100


def test_plan_never_reuses_students_or_rooms() -> None:
    surveys = _diverse_surveys(9)
    rooms = [build_room(f"R{index}") for index in range(6)]

    assignments = plan_assignments(surveys, rooms, CompatibilityCache())

    # 9 students give at most 4 disjoint pairs
    assert len(assignments) == 4
    _assert_disjoint(assignments)


def test_plan_stops_when_rooms_run_out() -> None:
    assignments = plan_assignments(
        _diverse_surveys(6),
        [build_room("R1"), build_room("R2")],
        CompatibilityCache(),
    )
    assert len(assignments) == 2
    assert [item.room_id for item in assignments] == ["R1", "R2"]


def test_plan_only_uses_rooms_with_free_slots() -> None:
    rooms = [build_room("FULL", occupants=("X", "Y")), build_room("SINGLE", capacity=1), build_room("OPEN")]
    assignments = plan_assignments(_diverse_surveys(4), rooms, CompatibilityCache())
    assert [item.room_id for item in assignments] == ["OPEN"]


def test_plan_pairs_are_best_first() -> None:
    cache = CompatibilityCache()
    assignments = plan_assignments(_diverse_surveys(8), [build_room(f"R{i}") for i in range(4)], cache)
    values = [item.compatibility_score for item in assignments]
    assert values == sorted(values, reverse=True)
    assert cache.computations == 28


def test_parallel_scoring_matches_sequential_plan() -> None:
    surveys = _diverse_surveys(10)
    rooms = [build_room(f"R{i}") for i in range(5)]

    sequential = plan_assignments(surveys, rooms, CompatibilityCache(), max_workers=1)
    parallel = plan_assignments(surveys, rooms, CompatibilityCache(), max_workers=4)

    assert [(a.room_id, a.student_ids) for a in sequential] == [(a.room_id, a.student_ids) for a in parallel]


def test_plan_requires_two_complete_surveys() -> None:
    rooms = [build_room("R1")]
    with pytest.raises(InsufficientDataError):
        plan_assignments([build_survey("A")], rooms, CompatibilityCache())
    with pytest.raises(InsufficientDataError):
        plan_assignments(
            [build_survey("A"), replace(build_survey("B"), study_habits=None)],
            rooms,
            CompatibilityCache(),
        )


def test_plan_requires_a_usable_room() -> None:
    with pytest.raises(InsufficientDataError):
        plan_assignments(_diverse_surveys(4), [], CompatibilityCache())
    with pytest.raises(InsufficientDataError):
        plan_assignments(_diverse_surveys(4), [build_room("R1", capacity=1)], CompatibilityCache())


def test_plan_rejects_mixed_terms() -> None:
    surveys = [build_survey("A"), build_survey("B", term="2027-SPRING")]
    with pytest.raises(ValueError):
        plan_assignments(surveys, [build_room("R1")], CompatibilityCache())


@pytest.mark.parametrize("max_workers", [1, 4])
def test_plan_honours_cancellation(max_workers) -> None:
    cancel = Event()
    cancel.set()
    cache = CompatibilityCache()

    with pytest.raises(PlanningCancelledError):
        plan_assignments(
            _diverse_surveys(6),
            [build_room("R1")],
            cache,
            max_workers=max_workers,
            cancel_event=cancel,
        )
    assert cache.computations == 0


# --- AssignmentPlannerService ---

class FlakyRepository(DataRepository):
    """Fails the second assignment insert of a run."""

    def __init__(self, settings) -> None:
        super().__init__(settings)
        self.inserts = 0

    def create_assignment(self, assignment):
        self.inserts += 1
        if self.inserts == 2:
            raise RuntimeError("disk full")
        return super().create_assignment(assignment)


def _seed(repository, surveys, rooms) -> None:
    for survey in surveys:
        repository.upsert_survey(survey)
    for room in rooms:
        repository.create_room(room)


def test_auto_assign_persists_pending_assignments(repository, settings) -> None:
    _seed(repository, _diverse_surveys(6), [build_room(f"R{i}") for i in range(3)])
    service = AssignmentPlannerService(repository=repository, settings=settings)

    created = service.auto_assign("2026-FALL")

    assert len(created) == 3
    assert all(item.assignment_id for item in created)
    stored = repository.list_assignments("2026-FALL")
    assert [item.assignment_id for item in stored] == [item.assignment_id for item in created]
    assert all(item.status == AssignmentStatus.PENDING_APPROVAL for item in stored)
    _assert_disjoint(stored)
    # planning alone does not move anybody in
    assert all(room.current_occupancy == 0 for room in repository.list_rooms())


def test_auto_assign_reports_partial_batch(settings) -> None:
    repository = FlakyRepository(settings)
    repository.initialize_database()
    _seed(repository, _diverse_surveys(6), [build_room(f"R{i}") for i in range(3)])
    service = AssignmentPlannerService(repository=repository, settings=settings)

    with pytest.raises(AssignmentBatchError) as exc_info:
        service.auto_assign("2026-FALL")

    error = exc_info.value
    assert len(error.created) == 1
    assert error.failed_pair[0] not in error.created[0].student_ids
    assert repository.count_assignments("2026-FALL") == 1


def test_auto_assign_without_surveys(repository, settings) -> None:
    repository.create_room(build_room("R1"))
    service = AssignmentPlannerService(repository=repository, settings=settings)
    with pytest.raises(InsufficientDataError):
        service.auto_assign("2026-FALL")


def test_auto_assign_skips_students_already_assigned(repository, settings) -> None:
    surveys = _diverse_surveys(6)
    _seed(repository, surveys[:4], [build_room(f"R{i}") for i in range(3)])
    service = AssignmentPlannerService(repository=repository, settings=settings)
    first = service.auto_assign("2026-FALL")
    assert sorted(item.room_id for item in first) == ["R0", "R1"]

    for survey in surveys[4:]:
        repository.upsert_survey(survey)
    second = service.auto_assign("2026-FALL")

    assert len(second) == 1
    assert set(second[0].student_ids) == {"S04", "S05"}
    assert second[0].room_id == "R2"
    _assert_disjoint(repository.list_assignments("2026-FALL"))


def test_auto_assign_reuses_students_after_rejection(repository, settings) -> None:
    _seed(repository, _diverse_surveys(2), [build_room("R0")])
    service = AssignmentPlannerService(repository=repository, settings=settings)
    first = service.auto_assign("2026-FALL")
    repository.update_assignment_status(first[0].assignment_id, AssignmentStatus.REJECTED)

    second = service.auto_assign("2026-FALL")

    assert set(second[0].student_ids) == set(first[0].student_ids)
    assert second[0].room_id == "R0"

    with pytest.raises(InsufficientDataError):
        service.auto_assign("2026-FALL")


def test_manual_assignment_records_pair_score(repository, settings) -> None:
    _seed(repository, [build_survey("A"), build_survey("B")], [build_room("R1", capacity=3)])
    service = AssignmentPlannerService(repository=repository, settings=settings)

    pair = service.create_assignment(room_id="R1", student_ids=["A", "B"], term="2026-FALL", notes="requested")
    solo = service.create_assignment(room_id="R1", student_ids=["C"], term="2026-FALL")

    assert pair.compatibility_score == 100
    assert pair.notes == "requested"
    assert solo.compatibility_score == 0
    assert repository.count_assignments("2026-FALL") == 2


def test_manual_assignment_validates_room(repository, settings) -> None:
    repository.create_room(build_room("R1", capacity=2, occupants=("X",)))
    service = AssignmentPlannerService(repository=repository, settings=settings)

    with pytest.raises(RoomNotFoundError):
        service.create_assignment(room_id="NOPE", student_ids=["A"], term="2026-FALL")
    with pytest.raises(CapacityExceededError):
        service.create_assignment(room_id="R1", student_ids=["A", "B"], term="2026-FALL")
    with pytest.raises(ValueError):
        service.create_assignment(room_id="R1", student_ids=["A", "A"], term="2026-FALL")
    with pytest.raises(ValueError):
        service.create_assignment(room_id="R1", student_ids=[], term="2026-FALL")
    assert repository.count_assignments() == 0
