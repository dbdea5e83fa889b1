"""Pairwise roommate compatibility scoring.

Six factor sub-scores, each in [0, 100], are combined with fixed weights:

    lifestyle 0.20, study 0.20, cleanliness 0.20,
    social 0.15, sleep 0.15, personality 0.10

Proximity terms subtract a fixed penalty per unit of difference from the
attribute's point pool and floor at zero. Match terms award the full pool on
equality and a smaller, non-zero share otherwise.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from backend.domain.errors import IncompleteSurveyError, InvalidTimeFormatError
from backend.domain.models import (
    CleanlinessPreferences,
    CompatibilityScore,
    LifestylePreferences,
    PersonalityTraits,
    SleepSchedule,
    SocialPreferences,
    StudyHabits,
    Survey,
)


# percentage points, summing to 100
WEIGHTS: dict[str, int] = {
    "lifestyle": 20,
    "study": 20,
    "cleanliness": 20,
    "social": 15,
    "sleep": 15,
    "personality": 10,
}

STRENGTH_THRESHOLD = 80
SLEEP_GAP_WARNING_MINUTES = 180
MINUTES_PER_DAY = 24 * 60

REASONS: dict[str, str] = {
    "lifestyle": "Similar lifestyle habits",
    "study": "Compatible study preferences",
    "cleanliness": "Similar cleanliness standards",
    "social": "Matching social preferences",
    "sleep": "Compatible sleep schedules",
    "personality": "Complementary personalities",
}

WARNING_SMOKING = "Different smoking habits"
WARNING_FOOD = "Different food preferences"
WARNING_SLEEP = "Significantly different sleep schedules"

_TIME_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")


def parse_clock_time(value: str) -> int:
    """Convert a 12-hour clock string like '11:00 PM' to minutes since midnight.

    12 AM maps to hour 0 and 12 PM to hour 12.
    """
    if not isinstance(value, str):
        raise InvalidTimeFormatError(value)
    match = _TIME_PATTERN.match(value)
    if match is None:
        raise InvalidTimeFormatError(value)

    hours = int(match.group(1))
    minutes = int(match.group(2))
    meridiem = match.group(3).upper()
    if not 1 <= hours <= 12 or not 0 <= minutes <= 59:
        raise InvalidTimeFormatError(value)

    if meridiem == "AM" and hours == 12:
        hours = 0
    elif meridiem == "PM" and hours != 12:
        hours += 12
    return hours * 60 + minutes


def clock_distance(first: str, second: str) -> int:
    """Minutes between two clock times, measured the short way around midnight."""
    diff = abs(parse_clock_time(first) - parse_clock_time(second))
    return min(diff, MINUTES_PER_DAY - diff)


def _proximity(points: int, difference: int, penalty_per_unit: int) -> int:
    return max(0, points - difference * penalty_per_unit)


def _match(same: bool, points: int, partial: int) -> int:
    return points if same else partial


def lifestyle_score(a: LifestylePreferences, b: LifestylePreferences) -> int:
    score = 0
    # one point per 30 minutes apart
    score += max(0, 25 - clock_distance(a.sleep_time, b.sleep_time) // 30)
    score += max(0, 25 - clock_distance(a.wake_time, b.wake_time) // 30)
    score += _match(a.food_preference == b.food_preference, 20, 10)
    score += _match(a.smoking_habit == b.smoking_habit, 15, 5)
    score += _match(a.drinking_habit == b.drinking_habit, 15, 5)
    return score


def study_score(a: StudyHabits, b: StudyHabits) -> int:
    score = 0
    score += _match(a.study_style == b.study_style, 30, 15)
    score += _match(a.needs_quiet_environment == b.needs_quiet_environment, 25, 10)
    score += _match(a.preferred_study_time == b.preferred_study_time, 25, 12)
    score += _match(a.music_while_studying == b.music_while_studying, 20, 10)
    return score


def cleanliness_score(a: CleanlinessPreferences, b: CleanlinessPreferences) -> int:
    score = 0
    score += _match(a.cleaning_frequency == b.cleaning_frequency, 35, 17)
    score += _proximity(35, abs(a.organization_level - b.organization_level), 10)
    score += _proximity(30, abs(a.shared_items_comfort - b.shared_items_comfort), 8)
    return score


def social_score(a: SocialPreferences, b: SocialPreferences) -> int:
    score = 0
    score += _match(a.visitor_frequency == b.visitor_frequency, 35, 17)
    score += _match(a.party_attitude == b.party_attitude, 30, 15)
    score += _proximity(35, abs(a.privacy_needs - b.privacy_needs), 10)
    return score


def sleep_score(a: SleepSchedule, b: SleepSchedule) -> int:
    score = 0
    # one point per 20 minutes apart
    score += max(0, 35 - clock_distance(a.typical_bedtime, b.typical_bedtime) // 20)
    score += max(0, 35 - clock_distance(a.typical_wake_time, b.typical_wake_time) // 20)
    score += _match(a.sleep_sensitivity == b.sleep_sensitivity, 30, 15)
    return score


def personality_score(a: PersonalityTraits, b: PersonalityTraits) -> int:
    score = 0
    score += _proximity(40, abs(a.introvert_extrovert - b.introvert_extrovert), 12)
    score += _match(a.conflict_resolution == b.conflict_resolution, 30, 15)
    score += _proximity(30, abs(a.adaptability - b.adaptability), 8)
    return score


def _clamp(value: int) -> int:
    return max(0, min(100, value))


def _warnings(a: Survey, b: Survey) -> list[str]:
    warnings: list[str] = []
    if a.lifestyle.smoking_habit != b.lifestyle.smoking_habit:
        warnings.append(WARNING_SMOKING)
    if a.lifestyle.food_preference != b.lifestyle.food_preference:
        warnings.append(WARNING_FOOD)
    bedtime_gap = clock_distance(
        a.sleep_schedule.typical_bedtime,
        b.sleep_schedule.typical_bedtime,
    )
    if bedtime_gap > SLEEP_GAP_WARNING_MINUTES:
        warnings.append(WARNING_SLEEP)
    return warnings


def score_surveys(
    survey_a: Survey,
    survey_b: Survey,
    *,
    calculated_at: Optional[datetime] = None,
) -> CompatibilityScore:
    """Score two complete surveys; the result is symmetric in its arguments."""
    if not survey_a.is_complete:
        raise IncompleteSurveyError(survey_a.student_id, side="a")
    if not survey_b.is_complete:
        raise IncompleteSurveyError(survey_b.student_id, side="b")
    if survey_a.term != survey_b.term:
        raise ValueError(
            f"Surveys belong to different terms: {survey_a.term} vs {survey_b.term}"
        )
    if survey_a.student_id == survey_b.student_id:
        raise ValueError(f"Cannot score student {survey_a.student_id} against themselves")

    components = {
        "lifestyle": _clamp(lifestyle_score(survey_a.lifestyle, survey_b.lifestyle)),
        "study": _clamp(study_score(survey_a.study_habits, survey_b.study_habits)),
        "cleanliness": _clamp(
            cleanliness_score(survey_a.cleanliness, survey_b.cleanliness)
        ),
        "social": _clamp(
            social_score(survey_a.social_preferences, survey_b.social_preferences)
        ),
        "sleep": _clamp(sleep_score(survey_a.sleep_schedule, survey_b.sleep_schedule)),
        "personality": _clamp(
            personality_score(survey_a.personality_traits, survey_b.personality_traits)
        ),
    }
    overall = _clamp(
        sum(components[name] * weight for name, weight in WEIGHTS.items()) // 100
    )
    reasons = [
        REASONS[name]
        for name in WEIGHTS
        if components[name] >= STRENGTH_THRESHOLD
    ]

    return CompatibilityScore(
        student_a=survey_a.student_id,
        student_b=survey_b.student_id,
        term=survey_a.term,
        overall_score=overall,
        lifestyle_score=components["lifestyle"],
        study_score=components["study"],
        cleanliness_score=components["cleanliness"],
        social_score=components["social"],
        sleep_score=components["sleep"],
        personality_score=components["personality"],
        match_reasons=tuple(reasons),
        warnings=tuple(_warnings(survey_a, survey_b)),
        calculated_at=calculated_at or datetime.now(),
    )
