"""Domain-level validation rules for matching runs and assignment lifecycle."""

from __future__ import annotations

from dataclasses import dataclass

from backend.domain.errors import CapacityExceededError, InvalidTransitionError
from backend.domain.models import AssignmentStatus, Room


ALLOWED_TRANSITIONS: dict[AssignmentStatus, frozenset[AssignmentStatus]] = {
    AssignmentStatus.PENDING_APPROVAL: frozenset(
        {AssignmentStatus.APPROVED, AssignmentStatus.REJECTED}
    ),
    AssignmentStatus.APPROVED: frozenset({AssignmentStatus.CANCELLED}),
    AssignmentStatus.REJECTED: frozenset(),
    AssignmentStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class MatchingConfig:
    default_top_k: int
    max_top_k: int
    max_workers: int
    min_room_capacity: int


def validate_matching_config(config: MatchingConfig) -> None:
    if config.default_top_k <= 0:
        raise ValueError("default_top_k must be > 0")
    if config.max_top_k < config.default_top_k:
        raise ValueError("max_top_k must be >= default_top_k")
    if config.max_workers <= 0:
        raise ValueError("max_workers must be > 0")
    if config.min_room_capacity < 2:
        raise ValueError("min_room_capacity must be >= 2")


def is_terminal(status: AssignmentStatus) -> bool:
    return not ALLOWED_TRANSITIONS[status]


def validate_transition(current: AssignmentStatus, requested: AssignmentStatus) -> None:
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current, requested)


def validate_room_capacity(room: Room, incoming: int) -> None:
    """Reject filling `room` with `incoming` more students past its capacity."""
    requested = room.current_occupancy + incoming
    if requested > room.capacity:
        raise CapacityExceededError(room.room_id, room.capacity, requested)
