from __future__ import annotations

import os

import pytest

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("APP_ENVIRONMENT", "testing")
os.environ.setdefault("DB_SQLITE_PATH", ":memory:")

from defense_tracker.infrastructure.config import reset_settings  # noqa: E402
from defense_tracker.infrastructure.logging import clear_context  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_settings():
    reset_settings()
    yield
    clear_context()
    reset_settings()
