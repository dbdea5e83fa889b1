from __future__ import annotations

import pytest

from backend.repository.data_repository import DataRepository
from tests.factories import build_test_settings


@pytest.fixture
def settings(tmp_path):
    return build_test_settings(tmp_path, "roomie_test.db")


@pytest.fixture
def repository(settings) -> DataRepository:
    repo = DataRepository(settings)
    repo.initialize_database()
    return repo
