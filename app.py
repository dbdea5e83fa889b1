"""
app.py - FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend.controllers.assignment_controller import router as assignment_router
from backend.controllers.matching_controller import router as matching_router
from backend.controllers.survey_controller import router as survey_router
from backend.repository.data_repository import DataRepository
from backend.services.assignment_planner import AssignmentPlannerService
from backend.services.compatibility_cache import CompatibilityCache
from backend.services.lifecycle_service import AssignmentLifecycleService
from backend.services.matching_service import MatchingService
from backend.services.survey_service import SurveyService
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    One repository and one compatibility cache are shared by every service,
    so a survey resubmission invalidates the same cache the planner reads.
    """
    settings = settings or get_settings()

    # --- Repository (single SQLite connection factory) ---
    repository = DataRepository(settings)
    cache = CompatibilityCache(store=repository)

    # --- Services (business logic, no direct DB access) ---
    survey_service = SurveyService(repository=repository, settings=settings, cache=cache)
    matching_service = MatchingService(repository=repository, settings=settings, cache=cache)
    planner_service = AssignmentPlannerService(
        repository=repository,
        settings=settings,
        cache=cache,
    )
    lifecycle_service = AssignmentLifecycleService(repository=repository, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app, settings)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(survey_router)
    app.include_router(matching_router)
    app.include_router(assignment_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.repository = repository
    app.state.compatibility_cache = cache
    app.state.survey_service = survey_service
    app.state.matching_service = matching_service
    app.state.planner_service = planner_service
    app.state.lifecycle_service = lifecycle_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """Idempotent startup sequence. Safe to re-run on server restarts."""
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo rooms and surveys (skipped if rooms exist)")
        repository.seed_demo_data()

    logger.info("Startup complete - system ready")


# Module-level app object for uvicorn
app = create_app()
