"""Domain models for roommate surveys, compatibility scores and room assignments."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class FoodPreference(str, Enum):
    VEGETARIAN = "vegetarian"
    NON_VEGETARIAN = "non-vegetarian"
    VEGAN = "vegan"
    EGGETARIAN = "eggetarian"


class StudyStyle(str, Enum):
    FOCUSED = "focused"
    RELAXED = "relaxed"
    INTENSE = "intense"
    FLEXIBLE = "flexible"


class AssignmentStatus(str, Enum):
    PENDING_APPROVAL = "pending-approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LifestylePreferences:
    sleep_time: str = "11:00 PM"
    wake_time: str = "7:00 AM"
    food_preference: FoodPreference = FoodPreference.VEGETARIAN
    smoking_habit: bool = False
    drinking_habit: bool = False
    ac_temperature_preference: str = "moderate"
    music_preference: str = "headphones"


@dataclass(frozen=True)
class StudyHabits:
    study_style: StudyStyle = StudyStyle.FOCUSED
    preferred_study_time: str = "evening"
    needs_quiet_environment: bool = True
    group_study_preference: bool = False
    music_while_studying: bool = False


@dataclass(frozen=True)
class CleanlinessPreferences:
    cleaning_frequency: str = "weekly"
    organization_level: int = 3  # 1-5
    shared_items_comfort: int = 3  # 1-5
    bathroom_habits: str = "normal"


@dataclass(frozen=True)
class SocialPreferences:
    visitor_frequency: str = "sometimes"
    party_attitude: str = "occasional"
    conversation_style: str = "balanced"
    privacy_needs: int = 3  # 1-5


@dataclass(frozen=True)
class SleepSchedule:
    typical_bedtime: str = "11:00 PM"
    typical_wake_time: str = "7:00 AM"
    sleep_sensitivity: str = "moderate"
    nap_habits: bool = False
    weekend_schedule_differs: bool = True


@dataclass(frozen=True)
class PersonalityTraits:
    introvert_extrovert: int = 3  # 1=introvert, 5=extrovert
    conflict_resolution: str = "discuss"
    communication_style: str = "direct"
    adaptability: int = 3  # 1-5


@dataclass(frozen=True)
class Survey:
    """One student's questionnaire for one term.

    A preference group left as ``None`` has not been answered yet; the survey
    only counts as complete once all six groups are present.
    """

    student_id: str
    term: str
    lifestyle: Optional[LifestylePreferences] = None
    study_habits: Optional[StudyHabits] = None
    cleanliness: Optional[CleanlinessPreferences] = None
    social_preferences: Optional[SocialPreferences] = None
    sleep_schedule: Optional[SleepSchedule] = None
    personality_traits: Optional[PersonalityTraits] = None
    deal_breakers: tuple[str, ...] = ()
    additional_info: str = ""
    submitted_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return all(
            group is not None
            for group in (
                self.lifestyle,
                self.study_habits,
                self.cleanliness,
                self.social_preferences,
                self.sleep_schedule,
                self.personality_traits,
            )
        )


def pair_key(student_a: str, student_b: str) -> tuple[str, str]:
    """Canonical unordered key for a pair of student ids."""
    return (student_a, student_b) if student_a <= student_b else (student_b, student_a)


@dataclass(frozen=True)
class CompatibilityScore:
    student_a: str
    student_b: str
    term: str
    overall_score: int
    lifestyle_score: int
    study_score: int
    cleanliness_score: int
    social_score: int
    sleep_score: int
    personality_score: int
    match_reasons: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    calculated_at: datetime = field(default_factory=datetime.now, compare=False)

    @property
    def pair(self) -> tuple[str, str]:
        return pair_key(self.student_a, self.student_b)

    @property
    def score_id(self) -> str:
        low, high = self.pair
        return f"{low}_{high}"

    def other_student(self, student_id: str) -> str:
        if student_id == self.student_a:
            return self.student_b
        if student_id == self.student_b:
            return self.student_a
        raise ValueError(f"Student {student_id} is not part of score {self.score_id}")


@dataclass(frozen=True)
class Room:
    room_id: str
    capacity: int
    occupant_ids: tuple[str, ...] = ()
    room_number: str = ""
    hostel_block: str = ""
    floor: int = 0

    @property
    def current_occupancy(self) -> int:
        return len(self.occupant_ids)

    @property
    def free_slots(self) -> int:
        return max(0, self.capacity - self.current_occupancy)

    @property
    def is_available(self) -> bool:
        return self.current_occupancy < self.capacity


@dataclass(frozen=True)
class RoomAssignment:
    room_id: str
    student_ids: tuple[str, ...]
    term: str
    status: AssignmentStatus = AssignmentStatus.PENDING_APPROVAL
    compatibility_score: int = 0
    assignment_id: Optional[str] = None
    notes: str = ""
    created_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: str = ""
