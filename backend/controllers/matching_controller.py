"""HTTP controller layer for compatibility scores and match rankings."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import get_matching_service
from backend.domain.errors import (
    IncompleteSurveyError,
    InsufficientDataError,
    InvalidTimeFormatError,
    SurveyNotFoundError,
)
from backend.domain.models import CompatibilityScore
from backend.services.matching_service import MatchingService
from backend.utils.config import get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(tags=["matching"])


class ScoreRequest(BaseModel):
    term: str = Field(min_length=1)
    student_a: str = Field(min_length=1)
    student_b: str = Field(min_length=1)


class CompatibilityScoreResponse(BaseModel):
    student_a: str
    student_b: str
    term: str
    overall_score: int = Field(ge=0, le=100)
    lifestyle_score: int = Field(ge=0, le=100)
    study_score: int = Field(ge=0, le=100)
    cleanliness_score: int = Field(ge=0, le=100)
    social_score: int = Field(ge=0, le=100)
    sleep_score: int = Field(ge=0, le=100)
    personality_score: int = Field(ge=0, le=100)
    match_reasons: list[str]
    warnings: list[str]
    calculated_at: datetime

    @classmethod
    def from_domain(cls, score: CompatibilityScore) -> "CompatibilityScoreResponse":
        return cls(
            student_a=score.student_a,
            student_b=score.student_b,
            term=score.term,
            overall_score=score.overall_score,
            lifestyle_score=score.lifestyle_score,
            study_score=score.study_score,
            cleanliness_score=score.cleanliness_score,
            social_score=score.social_score,
            sleep_score=score.sleep_score,
            personality_score=score.personality_score,
            match_reasons=list(score.match_reasons),
            warnings=list(score.warnings),
            calculated_at=score.calculated_at,
        )


class MatchRow(BaseModel):
    student_id: str
    score: CompatibilityScoreResponse


class TopMatchesResponse(BaseModel):
    student_id: str
    term: str
    matches: list[MatchRow]


class GenerateResponse(BaseModel):
    term: str
    pairs_scored: int = Field(ge=0)


@router.post(
    "/compatibility/score",
    response_model=CompatibilityScoreResponse,
    status_code=status.HTTP_200_OK,
)
async def score_pair(
    payload: ScoreRequest,
    service: MatchingService = Depends(get_matching_service),
) -> CompatibilityScoreResponse:
    try:
        score = service.score(payload.term, payload.student_a, payload.student_b)
        return CompatibilityScoreResponse.from_domain(score)
    except SurveyNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except (IncompleteSurveyError, InvalidTimeFormatError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected scoring failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to score pair",
        ) from exc


@router.post(
    "/compatibility/{term}/generate",
    response_model=GenerateResponse,
    status_code=status.HTTP_200_OK,
)
async def generate_compatibilities(
    term: str,
    service: MatchingService = Depends(get_matching_service),
) -> GenerateResponse:
    """Score every pair of complete surveys in the term."""
    try:
        scores = service.generate_all_compatibilities(term)
        return GenerateResponse(term=term, pairs_scored=len(scores))
    except (InsufficientDataError, InvalidTimeFormatError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected compatibility generation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate compatibilities",
        ) from exc


@router.get(
    "/matches/{term}/{student_id}",
    response_model=TopMatchesResponse,
    status_code=status.HTTP_200_OK,
)
async def get_top_matches(
    term: str,
    student_id: str,
    k: int = Query(
        default=settings.matching_default_top_k,
        ge=0,
        le=settings.matching_max_top_k,
    ),
    service: MatchingService = Depends(get_matching_service),
) -> TopMatchesResponse:
    try:
        matches = service.top_matches(student_id, term, k)
    except SurveyNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InvalidTimeFormatError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return TopMatchesResponse(
        student_id=student_id,
        term=term,
        matches=[
            MatchRow(
                student_id=score.other_student(student_id),
                score=CompatibilityScoreResponse.from_domain(score),
            )
            for score in matches
        ],
    )
