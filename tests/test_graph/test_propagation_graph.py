"""Tests for PropagationGraph recording, weights and resonance."""

import asyncio
import math
from datetime import timedelta

import pytest

from echolayer.errors import GraphInconsistencyError, InputValidationError
from echolayer.graph.config import GraphConfig
from echolayer.graph.propagation import PropagationGraph
from echolayer.graph.schemas import NodeProfile, make_node_id
from echolayer.scoring.history import ScoreHistory


# ── Edge weights ────────────────────────────────────────────


class TestEdgeWeight:
    """Edge weight blends influence, reach and engagement."""

    def test_reference_weight(self, graph: PropagationGraph) -> None:
        weight = graph.compute_edge_weight(0.8, 5000, 0.6, 0.5, 1.0)
        expected = 0.32 + 0.2 * (math.log(5000) / 20) + 0.18 + 0.15
        assert weight == pytest.approx(expected)
        assert weight == pytest.approx(0.735, abs=1e-3)

    def test_scaled_by_interaction_strength(self, graph: PropagationGraph) -> None:
        full = graph.compute_edge_weight(0.8, 5000, 0.6, 0.5, 1.0)
        half = graph.compute_edge_weight(0.8, 5000, 0.6, 0.5, 0.5)
        assert half == pytest.approx(full / 2)

    def test_cross_platform_attenuated(self, graph: PropagationGraph) -> None:
        same = graph.compute_edge_weight(0.8, 5000, 0.6, 0.5, 1.0)
        cross = graph.compute_edge_weight(0.8, 5000, 0.6, 0.5, 1.0, cross_platform=True)
        assert cross == pytest.approx(same * 0.8)

    def test_strength_defaults_per_type(self, graph: PropagationGraph) -> None:
        assert graph.strength_for("share") == 1.0
        assert graph.strength_for("mention") == 0.6
        with pytest.raises(InputValidationError):
            graph.strength_for("teleport")


# ── Recording ───────────────────────────────────────────────


class TestRecordEvent:
    async def test_reference_event_weight(
        self, graph: PropagationGraph, make_event, strong_source, engaged_target
    ) -> None:
        outcome = await graph.record_event(
            make_event("alice", "bob", source_profile=strong_source, target_profile=engaged_target)
        )
        assert outcome.edge.weight == pytest.approx(0.735, abs=1e-3)
        assert outcome.edge.source == "twitter:alice"
        assert outcome.edge.target == "twitter:bob"

    async def test_cross_platform_event(
        self, graph: PropagationGraph, make_event, strong_source, engaged_target
    ) -> None:
        outcome = await graph.record_event(
            make_event(
                "alice",
                "bob",
                target_platform="telegram",
                source_profile=strong_source,
                target_profile=engaged_target,
            )
        )
        assert outcome.edge.is_cross_platform
        assert outcome.edge.weight == pytest.approx(0.7352 * 0.8, abs=1e-3)
        assert outcome.edge.platform_pair == ("twitter", "telegram")

    async def test_unscored_content_rejected(self, graph: PropagationGraph, make_event) -> None:
        with pytest.raises(GraphInconsistencyError) as exc_info:
            await graph.record_event(make_event("alice", "bob", content_id="unknown"))
        assert exc_info.value.context["content_id"] == "unknown"
        assert graph.propagation_count("unknown") == 0
        assert graph.get_node("twitter:alice") is None

    async def test_duplicate_event_rejected(self, graph: PropagationGraph, make_event) -> None:
        event = make_event("alice", "bob")
        await graph.record_event(event)
        with pytest.raises(InputValidationError):
            await graph.record_event(event)
        assert graph.propagation_count("c1") == 1

    async def test_non_positive_strength_rejected(self, graph: PropagationGraph, make_event) -> None:
        with pytest.raises(InputValidationError):
            await graph.record_event(make_event("alice", "bob", interaction_strength=0.0))

    async def test_zero_weight_rejected(self, graph: PropagationGraph, make_event) -> None:
        silent = NodeProfile(influence_weight=0.0, reach=0, engagement_rate=0.0)
        with pytest.raises(InputValidationError):
            await graph.record_event(
                make_event("ghost", "bob", source_profile=silent, target_profile=silent)
            )
        assert graph.propagation_count("c1") == 0

    async def test_broadcast_share(self, graph: PropagationGraph, make_event) -> None:
        outcome = await graph.record_event(make_event("alice", None))
        assert outcome.edge.target is None
        assert outcome.target_node is None
        assert graph.propagation_count("c1") == 1

    async def test_unseeded_nodes_use_defaults(self, graph: PropagationGraph, make_event) -> None:
        outcome = await graph.record_event(make_event("alice", "bob"))
        assert outcome.source_node.influence_weight == 0.5
        # 0.4 * 0.5 influence, no reach, no engagement
        assert outcome.edge.weight == pytest.approx(0.2)

    async def test_identity_resolver_seeds_new_nodes(
        self, scored_history: ScoreHistory, make_event, strong_source
    ) -> None:
        graph = PropagationGraph(
            scored_history,
            identity_resolver=lambda account, platform: strong_source if account == "alice" else None,
        )
        outcome = await graph.record_event(make_event("alice", "bob"))
        assert outcome.source_node.influence_weight == 0.8
        assert outcome.target_node.influence_weight == 0.5


class TestNodeMetrics:
    """Node metrics are recomputed from accumulated history."""

    async def test_reach_counts_distinct_targets(self, graph: PropagationGraph, make_event) -> None:
        await graph.record_event(make_event("alice", "bob"))
        await graph.record_event(make_event("alice", "carol"))
        await graph.record_event(make_event("alice", "bob", content_id="c2"))

        assert graph.get_node("twitter:alice").reach == 2

    async def test_reach_adds_seed(self, graph: PropagationGraph, make_event, strong_source) -> None:
        await graph.record_event(make_event("alice", "bob", source_profile=strong_source))
        assert graph.get_node("twitter:alice").reach == 5001

    async def test_engagement_tracks_relay_ratio(self, graph: PropagationGraph, make_event) -> None:
        await graph.record_event(make_event("alice", "bob", content_id="c1"))
        await graph.record_event(make_event("alice", "bob", content_id="c2"))
        assert graph.get_node("twitter:bob").engagement_rate == 0.0

        # bob relays one of the two items he received
        await graph.record_event(make_event("bob", "carol", content_id="c1"))
        assert graph.get_node("twitter:bob").engagement_rate == pytest.approx(0.25)

    async def test_returned_nodes_are_snapshots(self, graph: PropagationGraph, make_event) -> None:
        outcome = await graph.record_event(make_event("alice", "bob"))
        await graph.record_event(make_event("alice", "carol"))
        assert outcome.source_node.reach == 1
        assert graph.get_node("twitter:alice").reach == 2


# ── Queries ─────────────────────────────────────────────────


class TestQueries:
    async def test_counts_and_average_weight(self, graph: PropagationGraph, make_event) -> None:
        a = await graph.record_event(make_event("alice", "bob"))
        b = await graph.record_event(make_event("bob", "carol", interaction_type="mention"))

        assert graph.propagation_count("c1") == 2
        assert graph.average_edge_weight("c1") == pytest.approx(
            (a.edge.weight + b.edge.weight) / 2
        )
        assert graph.average_edge_weight("c2") == 0.0

    async def test_traverse_terminates_on_cycle(self, graph: PropagationGraph, make_event) -> None:
        for source, target in [("a", "b"), ("b", "c"), ("c", "a"), ("c", "d")]:
            await graph.record_event(make_event(source, target))

        reached = dict(graph.traverse(make_node_id("a", "twitter")))
        assert reached == {"twitter:b": 1, "twitter:c": 2, "twitter:d": 3}

    async def test_traverse_respects_depth(self, graph: PropagationGraph, make_event) -> None:
        chain = [f"n{i}" for i in range(10)]
        for source, target in zip(chain, chain[1:]):
            await graph.record_event(make_event(source, target))

        start = make_node_id("n0", "twitter")
        assert len(graph.traverse(start, max_depth=2)) == 2
        # Capped at the six-degree ceiling
        assert max(depth for _, depth in graph.traverse(start, max_depth=50)) == 6
        assert len(graph.traverse(start)) == 6

    async def test_traverse_rejects_zero_depth(self, graph: PropagationGraph) -> None:
        with pytest.raises(InputValidationError):
            graph.traverse("twitter:a", max_depth=0)

    async def test_upstream_and_path(self, graph: PropagationGraph, make_event) -> None:
        await graph.record_event(make_event("a", "b"))
        await graph.record_event(make_event("b", "c"))

        assert dict(graph.traverse_upstream("twitter:c")) == {"twitter:b": 1, "twitter:a": 2}
        assert graph.find_path("twitter:a", "twitter:c") == ["twitter:a", "twitter:b", "twitter:c"]
        assert graph.find_path("twitter:c", "twitter:a") is None

    async def test_subgraph(self, graph: PropagationGraph, make_event) -> None:
        await graph.record_event(make_event("a", "b"))
        await graph.record_event(make_event("b", "c"))
        await graph.record_event(make_event("x", "y"))

        sub = graph.get_subgraph("twitter:b", depth=1)
        assert sub["nodes"] == ["twitter:a", "twitter:b", "twitter:c"]
        assert len(sub["edges"]) == 2


# ── Resonance ───────────────────────────────────────────────


class TestResonance:
    async def test_single_edge_is_not_resonant(self, graph: PropagationGraph, make_event) -> None:
        outcome = await graph.record_event(make_event("alice", "bob"))
        assert outcome.resonance.reciprocity == 0.0
        assert outcome.resonance.loop_strength == pytest.approx(0.2)
        assert not outcome.newly_resonant
        assert not graph.is_resonant("c1")

    async def test_back_and_forth_is_resonant(self, graph: PropagationGraph, make_event, now) -> None:
        await graph.record_event(make_event("alice", "bob", at=now))
        outcome = await graph.record_event(make_event("bob", "alice", at=now))

        assert outcome.resonance.reciprocity == pytest.approx(1.0)
        assert outcome.resonance.loop_strength == pytest.approx(0.7)
        assert outcome.resonance.resonant
        assert outcome.newly_resonant
        assert graph.is_resonant("c1")
        assert graph.is_resonant("c1", period=now.date().isoformat())
        assert not graph.is_resonant("c1", period="1999-01-01")
        assert graph.resonant_content() == ["c1"]

    async def test_weighted_by_latest_composite(
        self, graph: PropagationGraph, scored_history: ScoreHistory, make_event, now
    ) -> None:
        await graph.record_event(make_event("alice", "bob", at=now))
        outcome = await graph.record_event(make_event("bob", "alice", at=now))
        composite = scored_history.latest("c1").composite
        assert outcome.resonance.weighted_resonance == pytest.approx(0.7 * composite)

    async def test_newly_resonant_reported_once_per_period(
        self, graph: PropagationGraph, make_event, now
    ) -> None:
        await graph.record_event(make_event("alice", "bob", at=now))
        first = await graph.record_event(make_event("bob", "alice", at=now))
        second = await graph.record_event(make_event("alice", "carol", at=now))
        assert first.newly_resonant
        assert not second.newly_resonant

    async def test_resonance_is_per_content(self, graph: PropagationGraph, make_event, now) -> None:
        await graph.record_event(make_event("alice", "bob", content_id="c1", at=now))
        await graph.record_event(make_event("bob", "alice", content_id="c2", at=now))
        assert not graph.is_resonant("c1")
        assert not graph.is_resonant("c2")

    async def test_prune_drops_stale_readings(self, graph: PropagationGraph, make_event, now) -> None:
        await graph.record_event(make_event("alice", "bob", at=now))
        assert graph.prune_resonance(now=now + timedelta(hours=1)) == 0
        assert graph.prune_resonance(now=now + timedelta(hours=100)) == 1
        assert graph.get_resonance("c1") is None
        # Edges survive pruning
        assert graph.propagation_count("c1") == 1

    async def test_custom_threshold(self, scored_history: ScoreHistory, make_event, now) -> None:
        graph = PropagationGraph(scored_history, GraphConfig(resonance_threshold=0.75))
        await graph.record_event(make_event("alice", "bob", at=now))
        await graph.record_event(make_event("bob", "alice", at=now))
        assert not graph.is_resonant("c1")


class TestAnalytics:
    async def test_aggregates(self, graph: PropagationGraph, make_event, now) -> None:
        await graph.record_event(make_event("alice", "bob", at=now))
        await graph.record_event(make_event("bob", "alice", at=now))
        await graph.record_event(
            make_event("carol", "dave", content_id="c2", target_platform="reddit", at=now)
        )

        stats = graph.analytics(since=now - timedelta(hours=1))
        assert stats.node_count == 4
        assert stats.edge_count == 3
        assert stats.recent_edges == 3
        assert stats.cross_platform_edges == 1
        assert stats.tracked_content == 2
        assert stats.resonant_content == 1
        assert stats.platform_pairs == {"twitter->twitter": 2, "twitter->reddit": 1}
        assert stats.to_dict()["average_loop_strength"] == pytest.approx(
            (0.7 + 0.2) / 2, abs=1e-4
        )


class TestConcurrency:
    async def test_concurrent_events_on_shared_nodes(self, graph: PropagationGraph, make_event) -> None:
        events = [make_event("hub", f"leaf{i}", content_id="c1" if i % 2 else "c2") for i in range(20)]
        await asyncio.gather(*(graph.record_event(e) for e in events))

        assert graph.get_node("twitter:hub").reach == 20
        assert graph.propagation_count("c1") + graph.propagation_count("c2") == 20
