"""Shared fixtures: a fixed clock and default heuristics."""

from datetime import datetime

import pytest

from inventory_insight.config import InsightSettings

NOW = datetime(2026, 10, 18, 12, 0)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings() -> InsightSettings:
    return InsightSettings()
