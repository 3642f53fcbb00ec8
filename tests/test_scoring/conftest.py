"""Pytest fixtures for attention scoring tests."""

import pytest

from echolayer.scoring.config import ScoringConfig
from echolayer.scoring.engine import ScoreEngine
from echolayer.scoring.history import ScoreHistory


@pytest.fixture
def engine() -> ScoreEngine:
    """Engine with default weights and boost."""
    return ScoreEngine(ScoringConfig())


@pytest.fixture
def low_boost_engine() -> ScoreEngine:
    """Engine whose boost kicks in above 0.7."""
    return ScoreEngine(ScoringConfig(boost_threshold=0.7))


@pytest.fixture
def history(engine: ScoreEngine) -> ScoreHistory:
    return ScoreHistory(engine)
