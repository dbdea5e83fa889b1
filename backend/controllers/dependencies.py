"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from backend.repository.data_repository import DataRepository
from backend.services.assignment_planner import AssignmentPlannerService
from backend.services.lifecycle_service import AssignmentLifecycleService
from backend.services.matching_service import MatchingService
from backend.services.survey_service import SurveyService


def _service_from_state(request: Request, attribute: str, label: str) -> Any:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} service is not initialized",
        )
    return service


def get_survey_service(request: Request) -> SurveyService:
    return _service_from_state(request, "survey_service", "Survey")


def get_matching_service(request: Request) -> MatchingService:
    return _service_from_state(request, "matching_service", "Matching")


def get_planner_service(request: Request) -> AssignmentPlannerService:
    return _service_from_state(request, "planner_service", "Planner")


def get_lifecycle_service(request: Request) -> AssignmentLifecycleService:
    return _service_from_state(request, "lifecycle_service", "Lifecycle")


def get_repository(request: Request) -> DataRepository:
    return _service_from_state(request, "repository", "Repository")
