"""Tests for environment-driven configuration."""

import pytest
from pydantic import ValidationError

from echolayer.config.settings import Settings, get_settings
from echolayer.graph.config import GraphConfig
from echolayer.rewards.config import RewardConfig
from echolayer.scoring.config import ScoringConfig


class TestSettings:
    def test_defaults(self, monkeypatch) -> None:
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        settings = Settings(_env_file=None)
        assert settings.log_level == "INFO"
        assert settings.collaborator_timeout_seconds == 5.0
        assert not settings.is_production

    def test_env_override(self, monkeypatch) -> None:
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("COLLABORATOR_TIMEOUT_SECONDS", "0.25")
        settings = Settings(_env_file=None)
        assert settings.is_production
        assert settings.collaborator_timeout_seconds == 0.25

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            Settings(collaborator_timeout_seconds=0)

    def test_get_settings_is_cached(self) -> None:
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestComponentConfigs:
    def test_component_prefixes(self, monkeypatch) -> None:
        monkeypatch.setenv("REWARD_DAILY_BUDGET", "250")
        monkeypatch.setenv("GRAPH_RESONANCE_THRESHOLD", "0.6")
        assert str(RewardConfig().daily_budget) == "250"
        assert GraphConfig().resonance_threshold == 0.6

    def test_scoring_defaults_load(self) -> None:
        config = ScoringConfig()
        assert config.boost_multiplier == pytest.approx(1.2)
