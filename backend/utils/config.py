"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    default_term: str
    matching_default_top_k: int
    matching_max_top_k: int
    planner_max_workers: int
    planner_min_room_capacity: int
    seed_demo_data: bool
    synthetic_random_seed: int
    synthetic_student_count: int
    synthetic_room_count: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process; call `get_settings.cache_clear()` to reload."""
    return Settings(
        app_name=_env_str("APP_NAME", "Roomie Matcher"),
        app_version=_env_str("APP_VERSION", "1.0.0"),
        log_level=_env_str("LOG_LEVEL", "INFO"),
        database_path=Path(
            _env_str("DATABASE_PATH", str(PROJECT_ROOT / "data" / "roomie.db"))
        ),
        default_term=_env_str("DEFAULT_TERM", "2026-FALL"),
        matching_default_top_k=_env_int("MATCHING_DEFAULT_TOP_K", 10),
        matching_max_top_k=_env_int("MATCHING_MAX_TOP_K", 100),
        planner_max_workers=_env_int("PLANNER_MAX_WORKERS", 4),
        planner_min_room_capacity=_env_int("PLANNER_MIN_ROOM_CAPACITY", 2),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", False),
        synthetic_random_seed=_env_int("SYNTHETIC_RANDOM_SEED", 42),
        synthetic_student_count=_env_int("SYNTHETIC_STUDENT_COUNT", 12),
        synthetic_room_count=_env_int("SYNTHETIC_ROOM_COUNT", 6),
    )
