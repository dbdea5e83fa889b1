"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import random
import sqlite3
from dataclasses import asdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional, Sequence
from uuid import uuid4

from backend.domain.constraints import validate_room_capacity
from backend.domain.errors import AssignmentNotFoundError, RoomNotFoundError
from backend.domain.models import (
    AssignmentStatus,
    CleanlinessPreferences,
    CompatibilityScore,
    FoodPreference,
    LifestylePreferences,
    PersonalityTraits,
    Room,
    RoomAssignment,
    SleepSchedule,
    SocialPreferences,
    StudyHabits,
    StudyStyle,
    Survey,
    pair_key,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

_SURVEY_GROUPS = (
    "lifestyle",
    "study_habits",
    "cleanliness",
    "social_preferences",
    "sleep_schedule",
    "personality_traits",
)


def _json_default(value: Any) -> Any:
    if isinstance(value, (FoodPreference, StudyStyle)):
        return value.value
    raise TypeError(f"Unserializable value: {value!r}")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _survey_payload(survey: Survey) -> str:
    groups = {
        name: asdict(getattr(survey, name)) if getattr(survey, name) is not None else None
        for name in _SURVEY_GROUPS
    }
    return json.dumps(groups, default=_json_default, sort_keys=True)


def _survey_from_row(row: sqlite3.Row) -> Survey:
    groups = json.loads(row["payload"])

    lifestyle = groups.get("lifestyle")
    if lifestyle is not None:
        lifestyle = LifestylePreferences(
            **{**lifestyle, "food_preference": FoodPreference(lifestyle["food_preference"])}
        )
    study = groups.get("study_habits")
    if study is not None:
        study = StudyHabits(**{**study, "study_style": StudyStyle(study["study_style"])})

    def _build(cls, name):
        data = groups.get(name)
        return cls(**data) if data is not None else None

    return Survey(
        student_id=str(row["student_id"]),
        term=str(row["term"]),
        lifestyle=lifestyle,
        study_habits=study,
        cleanliness=_build(CleanlinessPreferences, "cleanliness"),
        social_preferences=_build(SocialPreferences, "social_preferences"),
        sleep_schedule=_build(SleepSchedule, "sleep_schedule"),
        personality_traits=_build(PersonalityTraits, "personality_traits"),
        deal_breakers=tuple(json.loads(row["deal_breakers"])),
        additional_info=str(row["additional_info"]),
        submitted_at=_parse_iso(row["submitted_at"]),
    )


def _room_from_row(row: sqlite3.Row) -> Room:
    return Room(
        room_id=str(row["id"]),
        capacity=int(row["capacity"]),
        occupant_ids=tuple(json.loads(row["occupant_ids"])),
        room_number=str(row["room_number"]),
        hostel_block=str(row["hostel_block"]),
        floor=int(row["floor"]),
    )


def _score_from_row(row: sqlite3.Row) -> CompatibilityScore:
    return CompatibilityScore(
        student_a=str(row["student_a"]),
        student_b=str(row["student_b"]),
        term=str(row["term"]),
        overall_score=int(row["overall_score"]),
        lifestyle_score=int(row["lifestyle_score"]),
        study_score=int(row["study_score"]),
        cleanliness_score=int(row["cleanliness_score"]),
        social_score=int(row["social_score"]),
        sleep_score=int(row["sleep_score"]),
        personality_score=int(row["personality_score"]),
        match_reasons=tuple(json.loads(row["match_reasons"])),
        warnings=tuple(json.loads(row["warnings"])),
        calculated_at=_parse_iso(row["calculated_at"]) or datetime.now(),
    )


def _assignment_from_row(row: sqlite3.Row) -> RoomAssignment:
    return RoomAssignment(
        assignment_id=str(row["id"]),
        room_id=str(row["room_id"]),
        student_ids=tuple(json.loads(row["student_ids"])),
        term=str(row["term"]),
        status=AssignmentStatus(row["status"]),
        compatibility_score=int(row["compatibility_score"]),
        notes=str(row["notes"]),
        created_at=_parse_iso(row["created_at"]),
        approved_at=_parse_iso(row["approved_at"]),
        approved_by=str(row["approved_by"]),
    )


class DataRepository:
    """SQLite-backed survey, room, compatibility and assignment stores."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path, timeout=30.0)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Surveys (
                        student_id TEXT NOT NULL,
                        term TEXT NOT NULL,
                        payload TEXT NOT NULL,
                        deal_breakers TEXT NOT NULL DEFAULT '[]',
                        additional_info TEXT NOT NULL DEFAULT '',
                        is_complete INTEGER NOT NULL CHECK (is_complete IN (0,1)),
                        submitted_at TEXT,
                        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        PRIMARY KEY (student_id, term)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Rooms (
                        id TEXT PRIMARY KEY,
                        room_number TEXT NOT NULL DEFAULT '',
                        hostel_block TEXT NOT NULL DEFAULT '',
                        floor INTEGER NOT NULL DEFAULT 0,
                        capacity INTEGER NOT NULL CHECK (capacity > 0),
                        occupant_ids TEXT NOT NULL DEFAULT '[]',
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS CompatibilityScores (
                        term TEXT NOT NULL,
                        student_low TEXT NOT NULL,
                        student_high TEXT NOT NULL,
                        student_a TEXT NOT NULL,
                        student_b TEXT NOT NULL,
                        overall_score INTEGER NOT NULL CHECK (overall_score BETWEEN 0 AND 100),
                        lifestyle_score INTEGER NOT NULL,
                        study_score INTEGER NOT NULL,
                        cleanliness_score INTEGER NOT NULL,
                        social_score INTEGER NOT NULL,
                        sleep_score INTEGER NOT NULL,
                        personality_score INTEGER NOT NULL,
                        match_reasons TEXT NOT NULL DEFAULT '[]',
                        warnings TEXT NOT NULL DEFAULT '[]',
                        calculated_at TEXT NOT NULL,
                        PRIMARY KEY (term, student_low, student_high)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Assignments (
                        id TEXT PRIMARY KEY,
                        room_id TEXT NOT NULL,
                        student_ids TEXT NOT NULL,
                        term TEXT NOT NULL,
                        status TEXT NOT NULL,
                        compatibility_score INTEGER NOT NULL DEFAULT 0,
                        notes TEXT NOT NULL DEFAULT '',
                        created_at TEXT,
                        approved_at TEXT,
                        approved_by TEXT NOT NULL DEFAULT '',
                        FOREIGN KEY (room_id) REFERENCES Rooms(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_surveys_term
                    ON Surveys(term, is_complete);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_assignments_term_status
                    ON Assignments(term, status);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    # --- Surveys ---

    def upsert_survey(self, survey: Survey) -> bool:
        """Insert or replace the (student, term) survey; True when one was replaced."""
        submitted_at = survey.submitted_at or datetime.now()
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT 1 FROM Surveys WHERE student_id = ? AND term = ?;",
                (survey.student_id, survey.term),
            )
            replaced = cursor.fetchone() is not None
            cursor.execute(
                """
                INSERT INTO Surveys (
                    student_id, term, payload, deal_breakers, additional_info,
                    is_complete, submitted_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (student_id, term) DO UPDATE SET
                    payload = excluded.payload,
                    deal_breakers = excluded.deal_breakers,
                    additional_info = excluded.additional_info,
                    is_complete = excluded.is_complete,
                    submitted_at = excluded.submitted_at,
                    updated_at = CURRENT_TIMESTAMP;
                """,
                (
                    survey.student_id,
                    survey.term,
                    _survey_payload(survey),
                    json.dumps(list(survey.deal_breakers)),
                    survey.additional_info,
                    1 if survey.is_complete else 0,
                    _iso(submitted_at),
                ),
            )
            conn.commit()
        return replaced

    def get_survey(self, student_id: str, term: str) -> Optional[Survey]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM Surveys WHERE student_id = ? AND term = ?;",
                (student_id, term),
            )
            row = cursor.fetchone()
            return _survey_from_row(row) if row is not None else None

    def list_surveys(self, term: str) -> list[Survey]:
        """Surveys for the term in submission order."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM Surveys
                WHERE term = ?
                ORDER BY submitted_at ASC, rowid ASC;
                """,
                (term,),
            )
            return [_survey_from_row(row) for row in cursor.fetchall()]

    # --- Rooms ---

    def create_room(self, room: Room) -> Room:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO Rooms (id, room_number, hostel_block, floor, capacity, occupant_ids)
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    (
                        room.room_id,
                        room.room_number,
                        room.hostel_block,
                        room.floor,
                        room.capacity,
                        json.dumps(list(room.occupant_ids)),
                    ),
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Room {room.room_id} could not be created: {exc}") from exc
        return room

    def get_room(self, room_id: str) -> Optional[Room]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Rooms WHERE id = ?;", (room_id,))
            row = cursor.fetchone()
            return _room_from_row(row) if row is not None else None

    def list_rooms(self) -> list[Room]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Rooms ORDER BY rowid ASC;")
            return [_room_from_row(row) for row in cursor.fetchall()]

    def update_occupancy(
        self,
        room_id: str,
        student_ids: Sequence[str],
        delta: int,
    ) -> Room:
        """Add (delta > 0) or remove (delta < 0) occupants in one transaction.

        The capacity check and the write happen under a reserved write lock;
        on `CapacityExceededError` nothing is written.
        """
        if abs(delta) != len(student_ids):
            raise ValueError("delta must match the number of students moved")
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE;")
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Rooms WHERE id = ?;", (room_id,))
            row = cursor.fetchone()
            if row is None:
                raise RoomNotFoundError(f"Room {room_id} not found")
            room = _room_from_row(row)

            if delta > 0:
                incoming = [sid for sid in student_ids if sid not in room.occupant_ids]
                validate_room_capacity(room, len(incoming))
                occupants = list(room.occupant_ids) + incoming
            else:
                leaving = set(student_ids)
                occupants = [sid for sid in room.occupant_ids if sid not in leaving]

            cursor.execute(
                "UPDATE Rooms SET occupant_ids = ? WHERE id = ?;",
                (json.dumps(occupants), room_id),
            )
            conn.commit()
        logger.info(
            "Room occupancy updated | room_id=%s | delta=%s | occupants=%s/%s",
            room_id,
            delta,
            len(occupants),
            room.capacity,
        )
        return Room(
            room_id=room.room_id,
            capacity=room.capacity,
            occupant_ids=tuple(occupants),
            room_number=room.room_number,
            hostel_block=room.hostel_block,
            floor=room.floor,
        )

    # --- Compatibility scores ---

    def get_compatibility(
        self,
        term: str,
        student_a: str,
        student_b: str,
    ) -> Optional[CompatibilityScore]:
        low, high = pair_key(student_a, student_b)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM CompatibilityScores
                WHERE term = ? AND student_low = ? AND student_high = ?;
                """,
                (term, low, high),
            )
            row = cursor.fetchone()
            return _score_from_row(row) if row is not None else None

    def put_compatibility(self, score: CompatibilityScore) -> None:
        low, high = score.pair
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO CompatibilityScores (
                    term, student_low, student_high, student_a, student_b,
                    overall_score, lifestyle_score, study_score, cleanliness_score,
                    social_score, sleep_score, personality_score,
                    match_reasons, warnings, calculated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    score.term,
                    low,
                    high,
                    score.student_a,
                    score.student_b,
                    score.overall_score,
                    score.lifestyle_score,
                    score.study_score,
                    score.cleanliness_score,
                    score.social_score,
                    score.sleep_score,
                    score.personality_score,
                    json.dumps(list(score.match_reasons)),
                    json.dumps(list(score.warnings)),
                    _iso(score.calculated_at),
                ),
            )
            conn.commit()

    def delete_compatibility_for_student(self, student_id: str, term: str) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                DELETE FROM CompatibilityScores
                WHERE term = ? AND (student_low = ? OR student_high = ?);
                """,
                (term, student_id, student_id),
            )
            conn.commit()
            return int(cursor.rowcount)

    def count_compatibility_scores(self, term: Optional[str] = None) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            if term is None:
                cursor.execute("SELECT COUNT(*) AS count FROM CompatibilityScores;")
            else:
                cursor.execute(
                    "SELECT COUNT(*) AS count FROM CompatibilityScores WHERE term = ?;",
                    (term,),
                )
            return int(cursor.fetchone()["count"])

    # --- Assignments ---

    def create_assignment(self, assignment: RoomAssignment) -> str:
        assignment_id = assignment.assignment_id or uuid4().hex
        created_at = assignment.created_at or datetime.now()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO Assignments (
                    id, room_id, student_ids, term, status, compatibility_score,
                    notes, created_at, approved_at, approved_by
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    assignment_id,
                    assignment.room_id,
                    json.dumps(list(assignment.student_ids)),
                    assignment.term,
                    assignment.status.value,
                    assignment.compatibility_score,
                    assignment.notes,
                    _iso(created_at),
                    _iso(assignment.approved_at),
                    assignment.approved_by,
                ),
            )
            conn.commit()
        return assignment_id

    def get_assignment(self, assignment_id: str) -> Optional[RoomAssignment]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Assignments WHERE id = ?;", (assignment_id,))
            row = cursor.fetchone()
            return _assignment_from_row(row) if row is not None else None

    def list_assignments(self, term: str) -> list[RoomAssignment]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM Assignments WHERE term = ? ORDER BY rowid ASC;",
                (term,),
            )
            return [_assignment_from_row(row) for row in cursor.fetchall()]

    def update_assignment_status(
        self,
        assignment_id: str,
        status: AssignmentStatus,
        *,
        approved_by: str = "",
    ) -> RoomAssignment:
        with self._connect() as conn:
            cursor = conn.cursor()
            if status == AssignmentStatus.APPROVED:
                cursor.execute(
                    """
                    UPDATE Assignments
                    SET status = ?, approved_at = ?, approved_by = ?
                    WHERE id = ?;
                    """,
                    (status.value, _iso(datetime.now()), approved_by, assignment_id),
                )
            else:
                cursor.execute(
                    "UPDATE Assignments SET status = ? WHERE id = ?;",
                    (status.value, assignment_id),
                )
            if cursor.rowcount == 0:
                raise AssignmentNotFoundError(f"Assignment {assignment_id} not found")
            conn.commit()
            cursor.execute("SELECT * FROM Assignments WHERE id = ?;", (assignment_id,))
            return _assignment_from_row(cursor.fetchone())

    def count_assignments(self, term: Optional[str] = None) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            if term is None:
                cursor.execute("SELECT COUNT(*) AS count FROM Assignments;")
            else:
                cursor.execute(
                    "SELECT COUNT(*) AS count FROM Assignments WHERE term = ?;",
                    (term,),
                )
            return int(cursor.fetchone()["count"])

    # --- Demo data ---

    def seed_demo_data(self, term: Optional[str] = None) -> None:
        """Seed deterministic synthetic rooms and surveys only when tables are empty."""
        target_term = term or self._settings.default_term
        rng = random.Random(self._settings.synthetic_random_seed)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Rooms;")
            if int(cursor.fetchone()["count"]) > 0:
                logger.info("Demo data already present; skipping seed")
                return

        for index in range(self._settings.synthetic_room_count):
            block = "AB"[index % 2]
            self.create_room(
                Room(
                    room_id=f"{block}-{101 + index}",
                    capacity=rng.choice((2, 2, 3)),
                    room_number=str(101 + index),
                    hostel_block=f"Block {block}",
                    floor=1 + index // 4,
                )
            )

        bedtimes = ("10:00 PM", "10:30 PM", "11:00 PM", "11:30 PM", "12:00 AM", "1:00 AM")
        wake_times = ("6:00 AM", "6:30 AM", "7:00 AM", "8:00 AM", "9:00 AM")
        for index in range(self._settings.synthetic_student_count):
            bedtime = rng.choice(bedtimes)
            wake_time = rng.choice(wake_times)
            self.upsert_survey(
                Survey(
                    student_id=f"S{index + 1:03d}",
                    term=target_term,
                    lifestyle=LifestylePreferences(
                        sleep_time=bedtime,
                        wake_time=wake_time,
                        food_preference=rng.choice(list(FoodPreference)),
                        smoking_habit=rng.random() < 0.1,
                        drinking_habit=rng.random() < 0.25,
                    ),
                    study_habits=StudyHabits(
                        study_style=rng.choice(list(StudyStyle)),
                        preferred_study_time=rng.choice(("morning", "afternoon", "evening", "night")),
                        needs_quiet_environment=rng.random() < 0.6,
                        music_while_studying=rng.random() < 0.4,
                    ),
                    cleanliness=CleanlinessPreferences(
                        cleaning_frequency=rng.choice(("daily", "weekly", "biweekly")),
                        organization_level=rng.randint(1, 5),
                        shared_items_comfort=rng.randint(1, 5),
                    ),
                    social_preferences=SocialPreferences(
                        visitor_frequency=rng.choice(("rarely", "sometimes", "often")),
                        party_attitude=rng.choice(("never", "occasional", "frequent")),
                        privacy_needs=rng.randint(1, 5),
                    ),
                    sleep_schedule=SleepSchedule(
                        typical_bedtime=bedtime,
                        typical_wake_time=wake_time,
                        sleep_sensitivity=rng.choice(("light", "moderate", "heavy")),
                    ),
                    personality_traits=PersonalityTraits(
                        introvert_extrovert=rng.randint(1, 5),
                        conflict_resolution=rng.choice(("discuss", "avoid", "compromise")),
                        adaptability=rng.randint(1, 5),
                    ),
                    submitted_at=datetime(2026, 1, 1, 9, 0) + timedelta(minutes=index),
                )
            )
        logger.info(
            "Demo seed completed | term=%s | rooms=%s | surveys=%s",
            target_term,
            self._settings.synthetic_room_count,
            self._settings.synthetic_student_count,
        )
