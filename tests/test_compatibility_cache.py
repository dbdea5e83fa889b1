from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier, Event, Thread

from backend.services.compatibility_cache import CompatibilityCache, cache_key
from backend.services.scoring_service import WARNING_SMOKING, score_surveys
from tests.factories import build_survey


class CountingScorer:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self, survey_a, survey_b):
        self.calls += 1
        return score_surveys(survey_a, survey_b)


class FailingStore:
    def get_compatibility(self, term, student_a, student_b):
        raise RuntimeError("store offline")

    def put_compatibility(self, score):
        raise RuntimeError("store offline")

    def delete_compatibility_for_student(self, student_id, term):
        raise RuntimeError("store offline")


class MemoryStore:
    def __init__(self) -> None:
        self.scores = {}
        self.writes = 0

    def get_compatibility(self, term, student_a, student_b):
        return self.scores.get(cache_key(term, student_a, student_b))

    def put_compatibility(self, score):
        self.writes += 1
        self.scores[cache_key(score.term, score.student_a, score.student_b)] = score

    def delete_compatibility_for_student(self, student_id, term):
        stale = [key for key in self.scores if key[0] == term and student_id in key[1:]]
        for key in stale:
            del self.scores[key]
        return len(stale)


def test_cache_key_is_order_independent() -> None:
    assert cache_key("2026-FALL", "B", "A") == cache_key("2026-FALL", "A", "B") == ("2026-FALL", "A", "B")


def test_second_lookup_from_either_side_hits_cache() -> None:
    scorer = CountingScorer()
    cache = CompatibilityCache(scorer=scorer)
    alice, bob = build_survey("alice"), build_survey("bob")

    first = cache.get_or_compute(alice, bob)
    second = cache.get_or_compute(bob, alice)

    assert second is first
    assert scorer.calls == 1
    assert cache.computations == 1
    assert len(cache) == 1
    assert cache.get("2026-FALL", "bob", "alice") is first
    assert cache_key("2026-FALL", "bob", "alice") in cache
    assert cache_key("2027-SPRING", "alice", "bob") not in cache


def test_terms_are_cached_separately() -> None:
    scorer = CountingScorer()
    cache = CompatibilityCache(scorer=scorer)

    cache.get_or_compute(build_survey("A", term="2026-FALL"), build_survey("B", term="2026-FALL"))
    cache.get_or_compute(build_survey("A", term="2027-SPRING"), build_survey("B", term="2027-SPRING"))

    assert scorer.calls == 2
    assert len(cache) == 2


def test_invalidate_drops_only_edges_of_student() -> None:
    scorer = CountingScorer()
    cache = CompatibilityCache(scorer=scorer)
    a, b, c = build_survey("A"), build_survey("B"), build_survey("C")
    cache.get_or_compute(a, b)
    cache.get_or_compute(a, c)
    cache.get_or_compute(b, c)

    dropped = cache.invalidate("A")

    assert dropped == 2
    assert len(cache) == 1
    assert cache.get("2026-FALL", "B", "C") is not None
    assert cache.get("2026-FALL", "A", "B") is None

    cache.get_or_compute(b, a)
    assert scorer.calls == 4


def test_invalidate_can_be_limited_to_one_term() -> None:
    cache = CompatibilityCache()
    cache.get_or_compute(build_survey("A", term="T1"), build_survey("B", term="T1"))
    cache.get_or_compute(build_survey("A", term="T2"), build_survey("B", term="T2"))

    assert cache.invalidate("A", term="T1") == 1
    assert cache.get("T2", "A", "B") is not None
    assert cache.invalidate("nobody") == 0


def test_clear_empties_cache() -> None:
    cache = CompatibilityCache()
    cache.get_or_compute(build_survey("A"), build_survey("B"))
    cache.clear()
    assert len(cache) == 0
    assert cache.get("2026-FALL", "A", "B") is None


def test_failing_store_degrades_to_memory_only() -> None:
    scorer = CountingScorer()
    cache = CompatibilityCache(scorer=scorer, store=FailingStore())

    score = cache.get_or_compute(build_survey("A"), build_survey("B"))

    assert score.overall_score == 100
    assert scorer.calls == 1
    assert cache.get_or_compute(build_survey("B"), build_survey("A")) is score


def test_persisted_score_is_reused_without_rescoring() -> None:
    store = MemoryStore()
    warm = CompatibilityCache(store=store)
    warm.get_or_compute(build_survey("A"), build_survey("B"))
    assert store.writes == 1

    scorer = CountingScorer()
    cold = CompatibilityCache(scorer=scorer, store=store)
    score = cold.get_or_compute(build_survey("B"), build_survey("A"))

    assert scorer.calls == 0
    assert score.overall_score == 100
    assert store.writes == 1


def test_concurrent_lookups_compute_pair_once() -> None:
    scorer = CountingScorer()
    cache = CompatibilityCache(scorer=scorer)
    a, b = build_survey("A"), build_survey("B")
    workers = 8
    barrier = Barrier(workers)

    def _lookup(index: int):
        barrier.wait()
        return cache.get_or_compute(a, b) if index % 2 else cache.get_or_compute(b, a)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(_lookup, range(workers)))

    assert scorer.calls == 1
    assert all(result is results[0] for result in results)


class GatedScorer:
    """Blocks its first call until released."""

    def __init__(self) -> None:
        self.started = Event()
        self.release = Event()
        self.calls = 0

    def __call__(self, survey_a, survey_b):
        self.calls += 1
        if self.calls == 1:
            self.started.set()
            self.release.wait(timeout=5)
        return score_surveys(survey_a, survey_b)


def test_score_computed_before_invalidation_is_not_cached() -> None:
    scorer = GatedScorer()
    store = MemoryStore()
    cache = CompatibilityCache(scorer=scorer, store=store)
    old_a = build_survey("A")
    new_a = build_survey("A", lifestyle={"smoking_habit": True})
    b = build_survey("B")
    results = []

    worker = Thread(target=lambda: results.append(cache.get_or_compute(old_a, b)))
    worker.start()
    assert scorer.started.wait(timeout=5)
    cache.invalidate("A", term="2026-FALL")
    scorer.release.set()
    worker.join(timeout=5)

    assert results[0].warnings == ()
    assert cache.get("2026-FALL", "A", "B") is None
    assert store.writes == 0

    fresh = cache.get_or_compute(new_a, b)

    assert WARNING_SMOKING in fresh.warnings
    assert cache.get("2026-FALL", "B", "A") is fresh
    assert WARNING_SMOKING in store.get_compatibility("2026-FALL", "A", "B").warnings


def test_invalidate_with_term_drops_persisted_scores() -> None:
    store = MemoryStore()
    cache = CompatibilityCache(store=store)
    cache.get_or_compute(build_survey("A"), build_survey("B"))
    cache.get_or_compute(build_survey("B"), build_survey("C"))

    cache.invalidate("A", term="2026-FALL")

    assert store.get_compatibility("2026-FALL", "A", "B") is None
    assert store.get_compatibility("2026-FALL", "B", "C") is not None


def test_invalidate_survives_failing_store() -> None:
    cache = CompatibilityCache(store=FailingStore())
    cache.get_or_compute(build_survey("A"), build_survey("B"))
    assert cache.invalidate("A", term="2026-FALL") == 1
    assert len(cache) == 0
