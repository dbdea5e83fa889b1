"""Assignment status transitions and the room occupancy changes they trigger.

    pending-approval -> approved | rejected
    approved         -> cancelled

Approval adds the assignment's students to the room and cancellation of an
approved assignment removes them again. Both run under a per-room lock, and
the repository re-checks capacity inside its own transaction.
"""

from __future__ import annotations

from threading import Lock
from typing import Optional

from backend.domain.constraints import validate_transition
from backend.domain.errors import AssignmentNotFoundError
from backend.domain.models import AssignmentStatus, RoomAssignment
from backend.repository.data_repository import DataRepository
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_ACTOR = "system"


class AssignmentLifecycleService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._room_locks: dict[str, Lock] = {}
        self._registry_lock = Lock()

    def _room_lock(self, room_id: str) -> Lock:
        with self._registry_lock:
            lock = self._room_locks.get(room_id)
            if lock is None:
                lock = Lock()
                self._room_locks[room_id] = lock
            return lock

    def _load(self, assignment_id: str) -> RoomAssignment:
        assignment = self._repository.get_assignment(assignment_id)
        if assignment is None:
            raise AssignmentNotFoundError(f"Assignment {assignment_id} not found")
        return assignment

    def list_assignments(self, term: str) -> list[RoomAssignment]:
        return self._repository.list_assignments(term)

    def transition_assignment(
        self,
        assignment_id: str,
        new_status: AssignmentStatus,
        *,
        actor: str = "",
    ) -> RoomAssignment:
        room_id = self._load(assignment_id).room_id
        with self._room_lock(room_id):
            assignment = self._load(assignment_id)
            validate_transition(assignment.status, new_status)

            if new_status == AssignmentStatus.APPROVED:
                updated = self._approve(assignment, actor or DEFAULT_ACTOR)
            elif new_status == AssignmentStatus.CANCELLED:
                updated = self._cancel(assignment)
            else:
                updated = self._repository.update_assignment_status(assignment_id, new_status)

        logger.info(
            "Assignment transitioned | assignment_id=%s | from=%s | to=%s | actor=%s",
            assignment_id,
            assignment.status.value,
            new_status.value,
            actor or DEFAULT_ACTOR,
        )
        return updated

    def _approve(self, assignment: RoomAssignment, actor: str) -> RoomAssignment:
        students = assignment.student_ids
        self._repository.update_occupancy(assignment.room_id, students, len(students))
        try:
            return self._repository.update_assignment_status(
                assignment.assignment_id,
                AssignmentStatus.APPROVED,
                approved_by=actor,
            )
        except Exception:
            self._repository.update_occupancy(assignment.room_id, students, -len(students))
            raise

    def _cancel(self, assignment: RoomAssignment) -> RoomAssignment:
        students = assignment.student_ids
        self._repository.update_occupancy(assignment.room_id, students, -len(students))
        try:
            return self._repository.update_assignment_status(
                assignment.assignment_id,
                AssignmentStatus.CANCELLED,
            )
        except Exception:
            self._repository.update_occupancy(assignment.room_id, students, len(students))
            raise
