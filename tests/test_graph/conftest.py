"""Pytest fixtures for propagation graph tests."""

from datetime import datetime, timedelta
from typing import Callable

import pytest

from echolayer.graph.config import GraphConfig
from echolayer.graph.propagation import PropagationGraph
from echolayer.graph.schemas import NodeProfile, PropagationEvent
from echolayer.scoring.history import ScoreHistory


@pytest.fixture
async def scored_history(make_item, now) -> ScoreHistory:
    """History with content items c1 and c2 already scored."""
    history = ScoreHistory()
    await history.rescore(make_item("c1"), now=now)
    await history.rescore(make_item("c2", creator_id="creator_2"), now=now)
    return history


@pytest.fixture
def graph(scored_history: ScoreHistory) -> PropagationGraph:
    return PropagationGraph(scored_history, GraphConfig())


@pytest.fixture
def make_event(now) -> Callable[..., PropagationEvent]:
    """Factory for propagation events with sequential ids."""
    counter = {"n": 0}

    def _make(
        source: str,
        target: str | None,
        content_id: str = "c1",
        source_platform: str = "twitter",
        target_platform: str | None = None,
        at: datetime | None = None,
        **kwargs,
    ) -> PropagationEvent:
        counter["n"] += 1
        return PropagationEvent(
            event_id=f"e{counter['n']}",
            content_id=content_id,
            source_account=source,
            source_platform=source_platform,
            target_account=target,
            target_platform=target_platform or source_platform,
            timestamp=at or now + timedelta(minutes=counter["n"]),
            **kwargs,
        )

    return _make


@pytest.fixture
def strong_source() -> NodeProfile:
    """Seed profile for an influential identity."""
    return NodeProfile(influence_weight=0.8, reach=5000, engagement_rate=0.6)


@pytest.fixture
def engaged_target() -> NodeProfile:
    return NodeProfile(influence_weight=0.3, reach=100, engagement_rate=0.5)
