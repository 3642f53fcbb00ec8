"""Pytest fixtures for echolayer tests."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from echolayer.config.settings import Settings
from echolayer.scoring.schemas import ContentItem, EngagementSnapshot

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed scoring clock."""
    return NOW


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        environment="development",
        log_level="DEBUG",
        collaborator_timeout_seconds=0.5,
    )


@pytest.fixture
def sample_snapshot() -> EngagementSnapshot:
    """A healthy engagement snapshot."""
    return EngagementSnapshot(
        views=1000,
        organic_shares=80,
        total_shares=100,
        dwell_seconds=45.0,
        engagement_counts={"likes": 120, "comments": 30, "saves": 10},
        platform_reach=10000,
        last_interaction_at=NOW - timedelta(hours=2),
        interaction_frequency=5.0,
        sentiment=0.4,
        credibility=0.8,
        relevance=0.7,
        originality=0.9,
    )


@pytest.fixture
def make_item(sample_snapshot: EngagementSnapshot) -> Callable[..., ContentItem]:
    """Factory for content items; keyword overrides go to the snapshot."""

    def _make(
        content_id: str = "c1",
        creator_id: str = "creator_1",
        platform: str = "twitter",
        created_at: datetime = NOW - timedelta(days=1),
        **engagement: Any,
    ) -> ContentItem:
        snapshot = sample_snapshot.model_copy(update=engagement)
        return ContentItem(
            content_id=content_id,
            creator_id=creator_id,
            platform=platform,
            created_at=created_at,
            engagement=snapshot,
        )

    return _make
