"""Greedy term-wide room assignment.

A run has two phases. First every unordered pair of complete surveys is
scored, fanned out over a thread pool. Then the scored pairs are sorted best
first and consumed sequentially: a pair is taken when neither student is
already placed, and it gets the next room in the given order. The result is a
maximal greedy matching, not a maximum-weight one. Only two-person rooms are
formed, even when a room could hold more.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from threading import Event
from typing import Iterable, Optional, Sequence

from backend.domain.constraints import MatchingConfig, validate_matching_config, validate_room_capacity
from backend.domain.errors import (
    AssignmentBatchError,
    IncompleteSurveyError,
    InsufficientDataError,
    PlanningCancelledError,
    RoomNotFoundError,
)
from backend.domain.models import AssignmentStatus, CompatibilityScore, Room, RoomAssignment, Survey
from backend.repository.data_repository import DataRepository
from backend.services.compatibility_cache import CompatibilityCache
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

PAIR_SIZE = 2


def complete_surveys(surveys: Iterable[Survey]) -> list[Survey]:
    """Complete surveys in encounter order, one per student."""
    seen: set[str] = set()
    result: list[Survey] = []
    for survey in surveys:
        if not survey.is_complete or survey.student_id in seen:
            continue
        seen.add(survey.student_id)
        result.append(survey)
    return result


def generate_pairs(surveys: Sequence[Survey]) -> list[tuple[Survey, Survey]]:
    """All unordered pairs, (i, j) with i < j, in generation order."""
    return [
        (surveys[i], surveys[j])
        for i in range(len(surveys))
        for j in range(i + 1, len(surveys))
    ]


def _check_cancelled(cancel_event: Optional[Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise PlanningCancelledError("Planner run cancelled by caller")


def score_all_pairs(
    surveys: Sequence[Survey],
    cache: CompatibilityCache,
    *,
    max_workers: int = 1,
    cancel_event: Optional[Event] = None,
) -> list[CompatibilityScore]:
    """Score every pair through the cache; output keeps pair-generation order."""
    pairs = generate_pairs(surveys)

    def _score(pair: tuple[Survey, Survey]) -> CompatibilityScore:
        _check_cancelled(cancel_event)
        return cache.get_or_compute(pair[0], pair[1])

    if max_workers <= 1 or len(pairs) <= 1:
        return [_score(pair) for pair in pairs]

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pair-scorer") as pool:
        futures: list[Future[CompatibilityScore]] = [pool.submit(_score, pair) for pair in pairs]
        try:
            return [future.result() for future in futures]
        except BaseException:
            for future in futures:
                future.cancel()
            raise


def rank_pairs(scores: Iterable[CompatibilityScore]) -> list[CompatibilityScore]:
    """Best score first; equal scores keep their generation order."""
    return sorted(scores, key=lambda score: score.overall_score, reverse=True)


def usable_rooms(rooms: Iterable[Room], min_capacity: int = PAIR_SIZE) -> list[Room]:
    """Rooms, in the given order, able to take a fresh pair."""
    return [
        room
        for room in rooms
        if room.capacity >= min_capacity and room.free_slots >= PAIR_SIZE
    ]


def select_assignments(
    ranked: Sequence[CompatibilityScore],
    rooms: Sequence[Room],
    term: str,
    *,
    created_at: Optional[datetime] = None,
) -> list[RoomAssignment]:
    """Walk ranked pairs once, binding each fresh pair to the next room."""
    created_at = created_at or datetime.now()
    assigned: set[str] = set()
    assignments: list[RoomAssignment] = []
    room_index = 0

    for score in ranked:
        if room_index >= len(rooms):
            break
        if score.student_a in assigned or score.student_b in assigned:
            continue
        assignments.append(
            RoomAssignment(
                room_id=rooms[room_index].room_id,
                student_ids=(score.student_a, score.student_b),
                term=term,
                status=AssignmentStatus.PENDING_APPROVAL,
                compatibility_score=score.overall_score,
                created_at=created_at,
            )
        )
        assigned.update((score.student_a, score.student_b))
        room_index += 1
    return assignments


def plan_assignments(
    surveys: Sequence[Survey],
    rooms: Sequence[Room],
    cache: CompatibilityCache,
    *,
    max_workers: int = 1,
    min_room_capacity: int = PAIR_SIZE,
    cancel_event: Optional[Event] = None,
) -> list[RoomAssignment]:
    """Compute pending-approval assignments for one term without persisting them."""
    candidates = complete_surveys(surveys)
    if len(candidates) < 2:
        raise InsufficientDataError(
            f"Need at least 2 complete surveys for assignment, found {len(candidates)}"
        )
    terms = {survey.term for survey in candidates}
    if len(terms) != 1:
        raise ValueError(f"Surveys span multiple terms: {sorted(terms)}")
    term = candidates[0].term

    eligible = usable_rooms(rooms, min_room_capacity)
    if not eligible:
        raise InsufficientDataError(
            f"No available room with capacity >= {min_room_capacity}"
        )

    scores = score_all_pairs(
        candidates,
        cache,
        max_workers=max_workers,
        cancel_event=cancel_event,
    )
    _check_cancelled(cancel_event)
    assignments = select_assignments(rank_pairs(scores), eligible, term)
    logger.info(
        "Assignment plan built | term=%s | students=%s | pairs=%s | rooms=%s | assignments=%s",
        term,
        len(candidates),
        len(scores),
        len(eligible),
        len(assignments),
    )
    return assignments


class AssignmentPlannerService:
    """Runs the greedy planner against stored surveys and rooms and persists the result.

    A rerun for a term leaves out students who already hold a pending or
    approved assignment in it, and treats seats promised to pending
    assignments as taken. Two concurrent runs for the same term can still
    double-book rooms; callers serialize them.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        cache: Optional[CompatibilityCache] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._cache = cache or CompatibilityCache(store=self._repository)
        self._config = MatchingConfig(
            default_top_k=self._settings.matching_default_top_k,
            max_top_k=self._settings.matching_max_top_k,
            max_workers=self._settings.planner_max_workers,
            min_room_capacity=self._settings.planner_min_room_capacity,
        )
        validate_matching_config(self._config)

    def auto_assign(
        self,
        term: str,
        *,
        cancel_event: Optional[Event] = None,
    ) -> list[RoomAssignment]:
        surveys, rooms = self._open_demand(term)
        planned = plan_assignments(
            surveys,
            rooms,
            self._cache,
            max_workers=self._config.max_workers,
            min_room_capacity=self._config.min_room_capacity,
            cancel_event=cancel_event,
        )

        created: list[RoomAssignment] = []
        for assignment in planned:
            try:
                assignment_id = self._repository.create_assignment(assignment)
            except Exception as exc:
                failed_pair = (assignment.student_ids[0], assignment.student_ids[1])
                logger.error(
                    "Assignment persistence failed | term=%s | pair=%s/%s | created=%s | error=%s",
                    term,
                    failed_pair[0],
                    failed_pair[1],
                    len(created),
                    exc,
                )
                raise AssignmentBatchError(created, failed_pair, exc) from exc
            created.append(replace(assignment, assignment_id=assignment_id))

        logger.info(
            "Auto-assignment completed | term=%s | assignments=%s",
            term,
            len(created),
        )
        return created

    def _open_demand(self, term: str) -> tuple[list[Survey], list[Room]]:
        """Surveys of unplaced students and rooms net of pending reservations."""
        active = [
            assignment
            for assignment in self._repository.list_assignments(term)
            if assignment.status in (AssignmentStatus.PENDING_APPROVAL, AssignmentStatus.APPROVED)
        ]
        placed = {student_id for assignment in active for student_id in assignment.student_ids}
        reserved: dict[str, list[str]] = {}
        for assignment in active:
            if assignment.status == AssignmentStatus.PENDING_APPROVAL:
                reserved.setdefault(assignment.room_id, []).extend(assignment.student_ids)

        surveys = [survey for survey in self._repository.list_surveys(term) if survey.student_id not in placed]
        rooms = []
        for room in self._repository.list_rooms():
            pending = [sid for sid in reserved.get(room.room_id, ()) if sid not in room.occupant_ids]
            rooms.append(replace(room, occupant_ids=room.occupant_ids + tuple(pending)) if pending else room)

        if placed:
            logger.info(
                "Skipping students with active assignments | term=%s | students=%s | reserved_rooms=%s",
                term,
                len(placed),
                len(reserved),
            )
        return surveys, rooms

    def create_assignment(
        self,
        *,
        room_id: str,
        student_ids: Sequence[str],
        term: str,
        notes: str = "",
    ) -> RoomAssignment:
        """Create a pending assignment chosen by an administrator."""
        students = tuple(student_ids)
        if not students:
            raise ValueError("An assignment needs at least one student")
        if len(set(students)) != len(students):
            raise ValueError("Duplicate student ids in assignment")

        room = self._repository.get_room(room_id)
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} not found")
        validate_room_capacity(room, len(students))

        assignment = RoomAssignment(
            room_id=room_id,
            student_ids=students,
            term=term,
            status=AssignmentStatus.PENDING_APPROVAL,
            compatibility_score=self._pair_score(term, students),
            notes=notes,
            created_at=datetime.now(),
        )
        assignment_id = self._repository.create_assignment(assignment)
        logger.info(
            "Manual assignment created | assignment_id=%s | room_id=%s | students=%s",
            assignment_id,
            room_id,
            ",".join(students),
        )
        return replace(assignment, assignment_id=assignment_id)

    def _pair_score(self, term: str, students: tuple[str, ...]) -> int:
        if len(students) != PAIR_SIZE:
            return 0
        survey_a = self._repository.get_survey(students[0], term)
        survey_b = self._repository.get_survey(students[1], term)
        if survey_a is None or survey_b is None:
            return 0
        try:
            return self._cache.get_or_compute(survey_a, survey_b).overall_score
        except IncompleteSurveyError:
            return 0
