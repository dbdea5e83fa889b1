"""Error taxonomy shared by the repository and service layers.

All of these are local validation failures. None of them is transient, so
callers surface them to the operator instead of retrying.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from backend.domain.models import AssignmentStatus, RoomAssignment


class MatchingError(Exception):
    """Base class for roommate matching failures."""


class IncompleteSurveyError(MatchingError):
    """Raised when a survey that is not complete is submitted or scored."""

    def __init__(self, student_id: str, side: str | None = None) -> None:
        self.student_id = student_id
        self.side = side
        if side is None:
            message = f"Survey for student {student_id} is incomplete"
        else:
            message = f"Survey {side} (student {student_id}) is incomplete"
        super().__init__(message)


class InvalidTimeFormatError(MatchingError):
    """Raised when a clock value is not a valid 12-hour time such as '11:00 PM'."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Invalid 12-hour time value: {value!r}")


class SurveyNotFoundError(MatchingError):
    """Raised when a student has no complete survey for the term."""

    def __init__(self, student_id: str, term: str | None = None) -> None:
        self.student_id = student_id
        self.term = term
        suffix = f" in term {term}" if term else ""
        super().__init__(f"No complete survey found for student {student_id}{suffix}")


class InsufficientDataError(MatchingError):
    """Raised when a batch run lacks enough surveys or usable rooms."""


class RoomNotFoundError(MatchingError):
    """Raised when a room id is unknown."""


class AssignmentNotFoundError(MatchingError):
    """Raised when an assignment id is unknown."""


class InvalidTransitionError(MatchingError):
    """Raised when an assignment status change is not allowed."""

    def __init__(self, from_status: "AssignmentStatus", to_status: "AssignmentStatus") -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid status transition from {from_status.value} to {to_status.value}"
        )


class CapacityExceededError(MatchingError):
    """Raised when filling a room would push it past its capacity."""

    def __init__(self, room_id: str, capacity: int, requested: int) -> None:
        self.room_id = room_id
        self.capacity = capacity
        self.requested = requested
        super().__init__(
            f"Room {room_id} cannot hold {requested} occupants (capacity {capacity})"
        )


class PlanningCancelledError(MatchingError):
    """Raised when the caller cancels a planner run between pair evaluations."""


class AssignmentBatchError(MatchingError):
    """Raised when persisting one assignment of a planner batch fails.

    Assignments created before the failure are left in place and exposed on
    `created` so the caller can reconcile them.
    """

    def __init__(
        self,
        created: Sequence["RoomAssignment"],
        failed_pair: tuple[str, str],
        cause: BaseException,
    ) -> None:
        self.created = list(created)
        self.failed_pair = failed_pair
        self.cause = cause
        super().__init__(
            f"Failed to create assignment for pair {failed_pair[0]}/{failed_pair[1]} "
            f"after {len(self.created)} successful assignments: {cause}"
        )
