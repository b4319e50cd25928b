"""
Pytest Configuration and Fixtures.

Provides reusable fixtures for testing CrisisWatch components; the plain
factories they build on live in factories.py.
"""

import pytest

from crisiswatch.config import Settings
from crisiswatch.engine.fusion import RiskFusionEngine
from factories import make_settings


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


@pytest.fixture
def engine() -> RiskFusionEngine:
    return RiskFusionEngine()
