"""Storage protocols consumed by the matching core.

`DataRepository` satisfies all four; tests substitute in-memory fakes.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

from backend.domain.models import AssignmentStatus, CompatibilityScore, Room, RoomAssignment, Survey


@runtime_checkable
class SurveyStore(Protocol):
    def get_survey(self, student_id: str, term: str) -> Optional[Survey]: ...

    def list_surveys(self, term: str) -> list[Survey]: ...


@runtime_checkable
class RoomStore(Protocol):
    def list_rooms(self) -> list[Room]: ...

    def get_room(self, room_id: str) -> Optional[Room]: ...

    def update_occupancy(
        self,
        room_id: str,
        student_ids: Sequence[str],
        delta: int,
    ) -> Room: ...


@runtime_checkable
class CompatibilityStore(Protocol):
    def get_compatibility(
        self,
        term: str,
        student_a: str,
        student_b: str,
    ) -> Optional[CompatibilityScore]: ...

    def put_compatibility(self, score: CompatibilityScore) -> None: ...

    def delete_compatibility_for_student(self, student_id: str, term: str) -> int: ...


@runtime_checkable
class AssignmentStore(Protocol):
    def create_assignment(self, assignment: RoomAssignment) -> str: ...

    def get_assignment(self, assignment_id: str) -> Optional[RoomAssignment]: ...

    def update_assignment_status(
        self,
        assignment_id: str,
        status: AssignmentStatus,
        *,
        approved_by: str = "",
    ) -> RoomAssignment: ...
