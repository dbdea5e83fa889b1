#!/usr/bin/env python3
"""Validate local roommate matcher environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.repository.data_repository import DataRepository
from backend.services.assignment_planner import plan_assignments
from backend.services.compatibility_cache import CompatibilityCache
from backend.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="roomie-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_names = ["fastapi", "uvicorn", "pydantic", "httpx", "pytest"]
    import_errors: list[str] = []
    for module_name in package_names:
        try:
            importlib.import_module(module_name)
        except ImportError as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "roomie_validation.db",
        )
        repository = DataRepository(validation_settings)
        term = validation_settings.default_term

        # CHECK 3: Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Demo data seeding
        try:
            repository.seed_demo_data(term)
            rooms = repository.list_rooms()
            surveys = repository.list_surveys(term)
            if len(rooms) != validation_settings.synthetic_room_count:
                raise RuntimeError(f"expected {validation_settings.synthetic_room_count} rooms, got {len(rooms)}")
            if len(surveys) != validation_settings.synthetic_student_count:
                raise RuntimeError(
                    f"expected {validation_settings.synthetic_student_count} surveys, got {len(surveys)}"
                )
            ok, line = _print_result(
                "Demo data",
                True,
                f": {len(rooms)} rooms, {len(surveys)} surveys",
            )
        except Exception as exc:
            ok, line = _print_result("Demo data", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Greedy planning dry run
        try:
            cache = CompatibilityCache(store=repository)
            planned = plan_assignments(
                repository.list_surveys(term),
                repository.list_rooms(),
                cache,
                max_workers=validation_settings.planner_max_workers,
            )
            placed = [sid for item in planned for sid in item.student_ids]
            if len(placed) != len(set(placed)):
                raise RuntimeError("a student was placed twice")
            ok, line = _print_result(
                "Planner dry run",
                True,
                f": {len(planned)} assignments, {cache.computations} pairs scored",
            )
        except Exception as exc:
            ok, line = _print_result("Planner dry run", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Roommate Matcher Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
