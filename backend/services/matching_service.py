"""Per-student match ranking and term-wide compatibility generation."""

from __future__ import annotations

from threading import Event
from typing import Optional, Sequence

from backend.domain.constraints import MatchingConfig, validate_matching_config
from backend.domain.errors import InsufficientDataError, SurveyNotFoundError
from backend.domain.models import CompatibilityScore, Survey
from backend.repository.data_repository import DataRepository
from backend.services.assignment_planner import complete_surveys, score_all_pairs
from backend.services.compatibility_cache import CompatibilityCache
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def top_matches(
    student_id: str,
    surveys: Sequence[Survey],
    k: int,
    cache: CompatibilityCache,
) -> list[CompatibilityScore]:
    """Best `k` scores for `student_id` against every other complete survey.

    Sorting is stable, so equal scores keep the order the surveys were given in.
    """
    if k < 0:
        raise ValueError("k must be >= 0")
    own = next(
        (survey for survey in surveys if survey.student_id == student_id and survey.is_complete),
        None,
    )
    if own is None:
        raise SurveyNotFoundError(student_id)

    scores = [
        cache.get_or_compute(own, other)
        for other in complete_surveys(surveys)
        if other.student_id != student_id and other.term == own.term
    ]
    ranked = sorted(scores, key=lambda score: score.overall_score, reverse=True)
    return ranked[:k]


class MatchingService:
    """Score lookups and rankings backed by the shared compatibility cache."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        cache: Optional[CompatibilityCache] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._cache = cache or CompatibilityCache(store=self._repository)
        self._config = MatchingConfig(
            default_top_k=self._settings.matching_default_top_k,
            max_top_k=self._settings.matching_max_top_k,
            max_workers=self._settings.planner_max_workers,
            min_room_capacity=self._settings.planner_min_room_capacity,
        )
        validate_matching_config(self._config)

    @property
    def cache(self) -> CompatibilityCache:
        return self._cache

    def _require_survey(self, student_id: str, term: str) -> Survey:
        survey = self._repository.get_survey(student_id, term)
        if survey is None:
            raise SurveyNotFoundError(student_id, term)
        return survey

    def score(self, term: str, student_a: str, student_b: str) -> CompatibilityScore:
        if student_a == student_b:
            raise ValueError("Two different students are required")
        cached = self._cache.get(term, student_a, student_b)
        if cached is not None:
            return cached
        return self._cache.get_or_compute(
            self._require_survey(student_a, term),
            self._require_survey(student_b, term),
        )

    def top_matches(
        self,
        student_id: str,
        term: str,
        k: Optional[int] = None,
    ) -> list[CompatibilityScore]:
        limit = self._config.default_top_k if k is None else min(k, self._config.max_top_k)
        surveys = self._repository.list_surveys(term)
        try:
            matches = top_matches(student_id, surveys, limit, self._cache)
        except SurveyNotFoundError as exc:
            raise SurveyNotFoundError(student_id, term) from exc
        logger.info(
            "Top matches ranked | term=%s | student_id=%s | candidates=%s | returned=%s",
            term,
            student_id,
            len(surveys) - 1,
            len(matches),
        )
        return matches

    def generate_all_compatibilities(
        self,
        term: str,
        *,
        cancel_event: Optional[Event] = None,
    ) -> list[CompatibilityScore]:
        """Score and persist every pair of complete surveys in the term."""
        surveys = complete_surveys(self._repository.list_surveys(term))
        if len(surveys) < 2:
            raise InsufficientDataError(
                f"Need at least 2 complete surveys to calculate compatibility, found {len(surveys)}"
            )
        scores = score_all_pairs(
            surveys,
            self._cache,
            max_workers=self._config.max_workers,
            cancel_event=cancel_event,
        )
        logger.info(
            "Compatibility generation completed | term=%s | surveys=%s | pairs=%s",
            term,
            len(surveys),
            len(scores),
        )
        return scores
