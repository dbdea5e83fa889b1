"""In-memory memo of pairwise compatibility scores.

Scores are keyed by ``(term, low_id, high_id)`` so a lookup from either side of
a pair hits the same entry. Each key has its own lock; when two workers race
on the same pair the first insert wins and the other result is dropped.

Every invalidation bumps a per-student generation. A score whose students
changed generation while it was being computed is never cached or persisted.
"""

from __future__ import annotations

from threading import Lock
from typing import Callable, Optional

from backend.domain.models import CompatibilityScore, Survey, pair_key
from backend.repository.stores import CompatibilityStore
from backend.services.scoring_service import score_surveys
from backend.utils.logger import get_logger


logger = get_logger(__name__)

CacheKey = tuple[str, str, str]
Scorer = Callable[[Survey, Survey], CompatibilityScore]
Generation = tuple[int, int]


def cache_key(term: str, student_a: str, student_b: str) -> CacheKey:
    low, high = pair_key(student_a, student_b)
    return (term, low, high)


class CompatibilityCache:
    """Thread-safe score memo with optional write-through to a durable store."""

    def __init__(
        self,
        scorer: Scorer = score_surveys,
        store: Optional[CompatibilityStore] = None,
    ) -> None:
        self._scorer = scorer
        self._store = store
        self._scores: dict[CacheKey, CompatibilityScore] = {}
        self._key_locks: dict[CacheKey, Lock] = {}
        self._registry_lock = Lock()
        self._persist_lock = Lock()
        self._generations: dict[str, int] = {}
        self._computations = 0

    @property
    def computations(self) -> int:
        """Number of times the scorer has been invoked."""
        return self._computations

    def __len__(self) -> int:
        return len(self._scores)

    def __contains__(self, key: object) -> bool:
        return key in self._scores

    def _lock_for(self, key: CacheKey) -> Lock:
        with self._registry_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = Lock()
                self._key_locks[key] = lock
            return lock

    def get(self, term: str, student_a: str, student_b: str) -> Optional[CompatibilityScore]:
        return self._scores.get(cache_key(term, student_a, student_b))

    def _generation(self, key: CacheKey) -> Generation:
        _, low, high = key
        with self._registry_lock:
            return (self._generations.get(low, 0), self._generations.get(high, 0))

    def _insert(
        self,
        key: CacheKey,
        score: CompatibilityScore,
        generation: Generation,
    ) -> Optional[CompatibilityScore]:
        """Insert unless either student was invalidated since `generation` was read."""
        with self._registry_lock:
            _, low, high = key
            if (self._generations.get(low, 0), self._generations.get(high, 0)) != generation:
                return None
            return self._scores.setdefault(key, score)

    def _load_persisted(self, key: CacheKey) -> Optional[CompatibilityScore]:
        if self._store is None:
            return None
        term, low, high = key
        try:
            return self._store.get_compatibility(term, low, high)
        except Exception as exc:
            logger.warning(
                "Compatibility store read failed; computing in memory | term=%s | pair=%s/%s | error=%s",
                term,
                low,
                high,
                exc,
            )
            return None

    def _persist(self, key: CacheKey, score: CompatibilityScore, generation: Generation) -> None:
        if self._store is None:
            return
        with self._persist_lock:
            if self._generation(key) != generation:
                return
            try:
                self._store.put_compatibility(score)
            except Exception as exc:
                logger.warning(
                    "Compatibility store write failed; score kept in memory only | pair=%s | error=%s",
                    score.score_id,
                    exc,
                )

    def get_or_compute(self, survey_a: Survey, survey_b: Survey) -> CompatibilityScore:
        """Return the pair's score, computing and storing it on a miss.

        A score computed from answers that were invalidated mid-flight is
        returned to its caller but never cached or persisted.
        """
        key = cache_key(survey_a.term, survey_a.student_id, survey_b.student_id)
        cached = self._scores.get(key)
        if cached is not None:
            return cached

        with self._lock_for(key):
            cached = self._scores.get(key)
            if cached is not None:
                return cached

            generation = self._generation(key)
            persisted = self._load_persisted(key)
            if persisted is not None:
                return self._insert(key, persisted, generation) or persisted

            score = self._scorer(survey_a, survey_b)
            with self._registry_lock:
                self._computations += 1
            logger.debug(
                "Compatibility computed | term=%s | pair=%s | overall=%s",
                survey_a.term,
                score.score_id,
                score.overall_score,
            )
            stored = self._insert(key, score, generation)
            if stored is None:
                logger.info(
                    "Compatibility discarded after invalidation | term=%s | pair=%s",
                    survey_a.term,
                    score.score_id,
                )
                return score
            if stored is score:
                self._persist(key, score, generation)
            return stored

    def invalidate(self, student_id: str, term: Optional[str] = None) -> int:
        """Drop every cached edge touching `student_id`; returns how many were dropped.

        With a `term` and a store, the student's persisted scores for that term
        are deleted in the same critical section.
        """
        with self._persist_lock:
            with self._registry_lock:
                self._generations[student_id] = self._generations.get(student_id, 0) + 1
                stale = [
                    key
                    for key in self._scores
                    if student_id in key[1:] and (term is None or key[0] == term)
                ]
                for key in stale:
                    del self._scores[key]
                    self._key_locks.pop(key, None)
            persisted = self._delete_persisted(student_id, term)
        if stale or persisted:
            logger.info(
                "Compatibility cache invalidated | student_id=%s | term=%s | dropped=%s | persisted_dropped=%s",
                student_id,
                term,
                len(stale),
                persisted,
            )
        return len(stale)

    def _delete_persisted(self, student_id: str, term: Optional[str]) -> int:
        if self._store is None or term is None:
            return 0
        try:
            return self._store.delete_compatibility_for_student(student_id, term)
        except Exception as exc:
            logger.warning(
                "Compatibility store delete failed | student_id=%s | term=%s | error=%s",
                student_id,
                term,
                exc,
            )
            return 0

    def clear(self) -> None:
        with self._registry_lock:
            self._scores.clear()
            self._key_locks.clear()
