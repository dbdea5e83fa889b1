"""Builders shared by the test modules."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from backend.domain.models import (
    CleanlinessPreferences,
    LifestylePreferences,
    PersonalityTraits,
    Room,
    SleepSchedule,
    SocialPreferences,
    StudyHabits,
    Survey,
)
from backend.utils.config import get_settings


TERM = "2026-FALL"

_GROUPS: dict[str, type] = {
    "lifestyle": LifestylePreferences,
    "study_habits": StudyHabits,
    "cleanliness": CleanlinessPreferences,
    "social_preferences": SocialPreferences,
    "sleep_schedule": SleepSchedule,
    "personality_traits": PersonalityTraits,
}


def build_survey(student_id: str, term: str = TERM, **groups: dict[str, Any]) -> Survey:
    """Complete survey with default answers; keyword args override fields per group."""
    values = {
        name: cls(**groups.get(name, {}))
        for name, cls in _GROUPS.items()
    }
    return Survey(student_id=student_id, term=term, **values)


def build_room(room_id: str, capacity: int = 2, occupants: tuple[str, ...] = ()) -> Room:
    return Room(room_id=room_id, capacity=capacity, occupant_ids=occupants, room_number=room_id)


def build_test_settings(tmp_path, filename: str, **overrides):
    base = get_settings()
    values = {
        "database_path": tmp_path / filename,
        "seed_demo_data": False,
        "planner_max_workers": 2,
    }
    values.update(overrides)
    return replace(base, **values)
