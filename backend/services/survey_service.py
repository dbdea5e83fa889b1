"""Survey submission with score invalidation on resubmission."""

from __future__ import annotations

from typing import Optional

from backend.domain.errors import IncompleteSurveyError, SurveyNotFoundError
from backend.domain.models import Survey
from backend.repository.data_repository import DataRepository
from backend.services.compatibility_cache import CompatibilityCache
from backend.services.scoring_service import parse_clock_time
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class SurveyService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        cache: Optional[CompatibilityCache] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._cache = cache or CompatibilityCache(store=self._repository)

    def submit_survey(self, survey: Survey) -> bool:
        """Store a complete survey; returns True when it replaced an earlier one.

        A replacement drops every cached and persisted score involving the
        student so the next lookup re-scores against the new answers.
        """
        if not survey.is_complete:
            raise IncompleteSurveyError(survey.student_id)
        for value in (
            survey.lifestyle.sleep_time,
            survey.lifestyle.wake_time,
            survey.sleep_schedule.typical_bedtime,
            survey.sleep_schedule.typical_wake_time,
        ):
            parse_clock_time(value)

        replaced = self._repository.upsert_survey(survey)
        if replaced:
            dropped = self._cache.invalidate(survey.student_id, survey.term)
            logger.info(
                "Survey replaced | student_id=%s | term=%s | cached_scores_dropped=%s",
                survey.student_id,
                survey.term,
                dropped,
            )
        else:
            logger.info(
                "Survey submitted | student_id=%s | term=%s",
                survey.student_id,
                survey.term,
            )
        return replaced

    def get_survey(self, student_id: str, term: str) -> Survey:
        survey = self._repository.get_survey(student_id, term)
        if survey is None:
            raise SurveyNotFoundError(student_id, term)
        return survey

    def list_surveys(self, term: str) -> list[Survey]:
        return self._repository.list_surveys(term)
