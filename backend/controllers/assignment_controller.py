"""HTTP controller layer for room assignment planning and approval."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator

from backend.controllers.dependencies import get_lifecycle_service, get_planner_service
from backend.domain.errors import (
    AssignmentBatchError,
    AssignmentNotFoundError,
    CapacityExceededError,
    InsufficientDataError,
    InvalidTimeFormatError,
    InvalidTransitionError,
    RoomNotFoundError,
)
from backend.domain.models import AssignmentStatus, RoomAssignment
from backend.services.assignment_planner import AssignmentPlannerService
from backend.services.lifecycle_service import AssignmentLifecycleService
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["assignments"])


class AutoAssignRequest(BaseModel):
    term: str = Field(min_length=1)


class ManualAssignmentRequest(BaseModel):
    room_id: str = Field(min_length=1)
    student_ids: list[str] = Field(min_length=1)
    term: str = Field(min_length=1)
    notes: str = ""

    @field_validator("student_ids")
    @classmethod
    def validate_student_ids(cls, value: list[str]) -> list[str]:
        if any(not student_id.strip() for student_id in value):
            raise ValueError("student_ids must be non-empty strings")
        if len(set(value)) != len(value):
            raise ValueError("student_ids must be unique")
        return value


class TransitionRequest(BaseModel):
    status: AssignmentStatus
    actor: str = ""


class AssignmentResponse(BaseModel):
    assignment_id: str
    room_id: str
    student_ids: list[str]
    term: str
    status: AssignmentStatus
    compatibility_score: int = Field(ge=0, le=100)
    notes: str = ""
    created_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by: str = ""

    @classmethod
    def from_domain(cls, assignment: RoomAssignment) -> "AssignmentResponse":
        return cls(
            assignment_id=assignment.assignment_id or "",
            room_id=assignment.room_id,
            student_ids=list(assignment.student_ids),
            term=assignment.term,
            status=assignment.status,
            compatibility_score=assignment.compatibility_score,
            notes=assignment.notes,
            created_at=assignment.created_at,
            approved_at=assignment.approved_at,
            approved_by=assignment.approved_by,
        )


class AutoAssignResponse(BaseModel):
    term: str
    assignments: list[AssignmentResponse]


@router.post(
    "/assignments/auto",
    response_model=AutoAssignResponse,
    status_code=status.HTTP_200_OK,
)
async def auto_assign(
    payload: AutoAssignRequest,
    service: AssignmentPlannerService = Depends(get_planner_service),
) -> AutoAssignResponse:
    """Pair students greedily by compatibility and create pending assignments."""
    try:
        assignments = service.auto_assign(payload.term)
        return AutoAssignResponse(
            term=payload.term,
            assignments=[AssignmentResponse.from_domain(item) for item in assignments],
        )
    except (InsufficientDataError, InvalidTimeFormatError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except AssignmentBatchError as exc:
        logger.exception("Auto-assignment stopped after partial batch")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": str(exc),
                "created_assignment_ids": [item.assignment_id for item in exc.created],
                "failed_pair": list(exc.failed_pair),
            },
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected auto-assignment failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to auto-assign rooms",
        ) from exc


@router.post(
    "/assignments",
    response_model=AssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_assignment(
    payload: ManualAssignmentRequest,
    service: AssignmentPlannerService = Depends(get_planner_service),
) -> AssignmentResponse:
    try:
        assignment = service.create_assignment(
            room_id=payload.room_id,
            student_ids=payload.student_ids,
            term=payload.term,
            notes=payload.notes,
        )
        return AssignmentResponse.from_domain(assignment)
    except RoomNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except CapacityExceededError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc


@router.get(
    "/assignments/{term}",
    response_model=list[AssignmentResponse],
    status_code=status.HTTP_200_OK,
)
async def list_assignments(
    term: str,
    service: AssignmentLifecycleService = Depends(get_lifecycle_service),
) -> list[AssignmentResponse]:
    return [AssignmentResponse.from_domain(item) for item in service.list_assignments(term)]


@router.post(
    "/assignments/{assignment_id}/transition",
    response_model=AssignmentResponse,
    status_code=status.HTTP_200_OK,
)
async def transition_assignment(
    assignment_id: str,
    payload: TransitionRequest,
    service: AssignmentLifecycleService = Depends(get_lifecycle_service),
) -> AssignmentResponse:
    try:
        assignment = service.transition_assignment(
            assignment_id,
            payload.status,
            actor=payload.actor,
        )
        return AssignmentResponse.from_domain(assignment)
    except (AssignmentNotFoundError, RoomNotFoundError) as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except (InvalidTransitionError, CapacityExceededError) as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected assignment transition failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to transition assignment",
        ) from exc
