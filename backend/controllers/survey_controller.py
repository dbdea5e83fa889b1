"""HTTP controller layer for survey submission and room inventory."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import get_repository, get_survey_service
from backend.domain.errors import IncompleteSurveyError, InvalidTimeFormatError, SurveyNotFoundError
from backend.domain.models import (
    CleanlinessPreferences,
    FoodPreference,
    LifestylePreferences,
    PersonalityTraits,
    Room,
    SleepSchedule,
    SocialPreferences,
    StudyHabits,
    StudyStyle,
    Survey,
)
from backend.repository.data_repository import DataRepository
from backend.services.survey_service import SurveyService
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["surveys"])


class LifestyleDTO(BaseModel):
    sleep_time: str = "11:00 PM"
    wake_time: str = "7:00 AM"
    food_preference: FoodPreference = FoodPreference.VEGETARIAN
    smoking_habit: bool = False
    drinking_habit: bool = False
    ac_temperature_preference: str = "moderate"
    music_preference: str = "headphones"


class StudyHabitsDTO(BaseModel):
    study_style: StudyStyle = StudyStyle.FOCUSED
    preferred_study_time: str = "evening"
    needs_quiet_environment: bool = True
    group_study_preference: bool = False
    music_while_studying: bool = False


class CleanlinessDTO(BaseModel):
    cleaning_frequency: str = "weekly"
    organization_level: int = Field(default=3, ge=1, le=5)
    shared_items_comfort: int = Field(default=3, ge=1, le=5)
    bathroom_habits: str = "normal"


class SocialDTO(BaseModel):
    visitor_frequency: str = "sometimes"
    party_attitude: str = "occasional"
    conversation_style: str = "balanced"
    privacy_needs: int = Field(default=3, ge=1, le=5)


class SleepScheduleDTO(BaseModel):
    typical_bedtime: str = "11:00 PM"
    typical_wake_time: str = "7:00 AM"
    sleep_sensitivity: str = "moderate"
    nap_habits: bool = False
    weekend_schedule_differs: bool = True


class PersonalityDTO(BaseModel):
    introvert_extrovert: int = Field(default=3, ge=1, le=5)
    conflict_resolution: str = "discuss"
    communication_style: str = "direct"
    adaptability: int = Field(default=3, ge=1, le=5)


class SurveyPayload(BaseModel):
    """Survey as submitted by a student; omitted groups leave it incomplete."""

    student_id: str = Field(min_length=1)
    term: str = Field(min_length=1)
    lifestyle: Optional[LifestyleDTO] = None
    study_habits: Optional[StudyHabitsDTO] = None
    cleanliness: Optional[CleanlinessDTO] = None
    social_preferences: Optional[SocialDTO] = None
    sleep_schedule: Optional[SleepScheduleDTO] = None
    personality_traits: Optional[PersonalityDTO] = None
    deal_breakers: list[str] = Field(default_factory=list)
    additional_info: str = ""

    def to_domain(self) -> Survey:
        def _group(cls, dto):
            return cls(**dto.model_dump()) if dto is not None else None

        return Survey(
            student_id=self.student_id,
            term=self.term,
            lifestyle=_group(LifestylePreferences, self.lifestyle),
            study_habits=_group(StudyHabits, self.study_habits),
            cleanliness=_group(CleanlinessPreferences, self.cleanliness),
            social_preferences=_group(SocialPreferences, self.social_preferences),
            sleep_schedule=_group(SleepSchedule, self.sleep_schedule),
            personality_traits=_group(PersonalityTraits, self.personality_traits),
            deal_breakers=tuple(self.deal_breakers),
            additional_info=self.additional_info,
        )

    @classmethod
    def from_domain(cls, survey: Survey) -> "SurveyPayload":
        def _dto(dto_cls, group):
            return dto_cls.model_validate(group, from_attributes=True) if group is not None else None

        return cls(
            student_id=survey.student_id,
            term=survey.term,
            lifestyle=_dto(LifestyleDTO, survey.lifestyle),
            study_habits=_dto(StudyHabitsDTO, survey.study_habits),
            cleanliness=_dto(CleanlinessDTO, survey.cleanliness),
            social_preferences=_dto(SocialDTO, survey.social_preferences),
            sleep_schedule=_dto(SleepScheduleDTO, survey.sleep_schedule),
            personality_traits=_dto(PersonalityDTO, survey.personality_traits),
            deal_breakers=list(survey.deal_breakers),
            additional_info=survey.additional_info,
        )


class SurveySubmitResponse(BaseModel):
    student_id: str
    term: str
    replaced: bool


class SurveyResponse(SurveyPayload):
    is_complete: bool
    submitted_at: datetime | None = None


class RoomPayload(BaseModel):
    room_id: str = Field(min_length=1)
    capacity: int = Field(gt=0)
    room_number: str = ""
    hostel_block: str = ""
    floor: int = Field(default=0, ge=0)


class RoomResponse(RoomPayload):
    occupant_ids: list[str]
    current_occupancy: int = Field(ge=0)


def _survey_response(survey: Survey) -> SurveyResponse:
    return SurveyResponse(
        **SurveyPayload.from_domain(survey).model_dump(),
        is_complete=survey.is_complete,
        submitted_at=survey.submitted_at,
    )


def _room_response(room: Room) -> RoomResponse:
    return RoomResponse(
        room_id=room.room_id,
        capacity=room.capacity,
        room_number=room.room_number,
        hostel_block=room.hostel_block,
        floor=room.floor,
        occupant_ids=list(room.occupant_ids),
        current_occupancy=room.current_occupancy,
    )


@router.put(
    "/surveys",
    response_model=SurveySubmitResponse,
    status_code=status.HTTP_200_OK,
)
async def submit_survey(
    payload: SurveyPayload,
    service: SurveyService = Depends(get_survey_service),
) -> SurveySubmitResponse:
    """Create or replace the caller's survey for the term."""
    try:
        replaced = service.submit_survey(payload.to_domain())
        return SurveySubmitResponse(
            student_id=payload.student_id,
            term=payload.term,
            replaced=replaced,
        )
    except (IncompleteSurveyError, InvalidTimeFormatError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected survey submission failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to submit survey",
        ) from exc


@router.get(
    "/surveys/{term}",
    response_model=list[SurveyResponse],
    status_code=status.HTTP_200_OK,
)
async def list_surveys(
    term: str,
    complete_only: bool = Query(default=False),
    service: SurveyService = Depends(get_survey_service),
) -> list[SurveyResponse]:
    """All surveys submitted for the term, in submission order."""
    surveys = service.list_surveys(term)
    if complete_only:
        surveys = [survey for survey in surveys if survey.is_complete]
    return [_survey_response(survey) for survey in surveys]


@router.get(
    "/surveys/{term}/{student_id}",
    response_model=SurveyResponse,
    status_code=status.HTTP_200_OK,
)
async def get_survey(
    term: str,
    student_id: str,
    service: SurveyService = Depends(get_survey_service),
) -> SurveyResponse:
    try:
        survey = service.get_survey(student_id, term)
    except SurveyNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return _survey_response(survey)


@router.get(
    "/rooms",
    response_model=list[RoomResponse],
    status_code=status.HTTP_200_OK,
)
async def list_rooms(
    available_only: bool = Query(default=True),
    repository: DataRepository = Depends(get_repository),
) -> list[RoomResponse]:
    rooms = repository.list_rooms()
    if available_only:
        rooms = [room for room in rooms if room.is_available]
    return [_room_response(room) for room in rooms]


@router.post(
    "/rooms",
    response_model=RoomResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_room(
    payload: RoomPayload,
    repository: DataRepository = Depends(get_repository),
) -> RoomResponse:
    try:
        room = repository.create_room(Room(**payload.model_dump()))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    return _room_response(room)
