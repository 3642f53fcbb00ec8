"""Pytest fixtures for reward allocation tests."""

from decimal import Decimal

import pytest

from echolayer.graph.propagation import PropagationGraph
from echolayer.graph.schemas import NodeProfile, PropagationEvent
from echolayer.rewards.allocator import RewardAllocator
from echolayer.rewards.calculator import RewardCalculator
from echolayer.rewards.config import RewardConfig
from echolayer.scoring.history import ScoreHistory

PERIOD = "2024-06-01"


@pytest.fixture
def reward_config() -> RewardConfig:
    return RewardConfig(daily_budget=Decimal("1000"))


@pytest.fixture
def calculator(reward_config: RewardConfig) -> RewardCalculator:
    return RewardCalculator(reward_config)


@pytest.fixture
async def scores(make_item, now) -> ScoreHistory:
    """History with c1..c3 scored, each by a different creator."""
    history = ScoreHistory()
    for i in range(1, 4):
        await history.rescore(make_item(f"c{i}", creator_id=f"creator_{i}"), now=now)
    return history


@pytest.fixture
def graph(scores: ScoreHistory) -> PropagationGraph:
    return PropagationGraph(scores)


@pytest.fixture
async def allocator(
    scores: ScoreHistory, graph: PropagationGraph, reward_config: RewardConfig
) -> RewardAllocator:
    allocator = RewardAllocator(scores, graph, reward_config)
    await allocator.start_period(PERIOD)
    return allocator


@pytest.fixture
async def looped_event_id(graph: PropagationGraph, now) -> str:
    """Event id of a propagation that closes a resonant back-and-forth loop on c1."""
    seed = NodeProfile(influence_weight=0.6, reach=1000, engagement_rate=0.4)
    await graph.record_event(PropagationEvent(
        event_id="p1",
        content_id="c1",
        source_account="alice",
        source_platform="twitter",
        target_account="bob",
        target_platform="twitter",
        timestamp=now,
        source_profile=seed,
        target_profile=seed,
    ))
    await graph.record_event(PropagationEvent(
        event_id="p2",
        content_id="c1",
        source_account="bob",
        source_platform="twitter",
        target_account="alice",
        target_platform="twitter",
        timestamp=now,
    ))
    return "p2"
