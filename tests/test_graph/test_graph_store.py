"""Tests for the in-memory graph store and loop measurement."""

from datetime import timedelta

import pytest

from echolayer.graph.resonance import measure_loop_strength
from echolayer.graph.schemas import (
    NodeProfile,
    PropagationEdge,
    PropagationEvent,
    parse_propagation_event,
)
from echolayer.graph.storage import GraphStore
from echolayer.errors import InputValidationError


def _edge(event_id, source, target, now, content_id="c1", weight=0.5, hours=0.0):
    return PropagationEdge(
        event_id=event_id,
        source=source,
        target=target,
        content_id=content_id,
        source_platform="twitter",
        target_platform="twitter",
        interaction_type="share",
        weight=weight,
        timestamp=now + timedelta(hours=hours),
    )


class TestGraphStore:
    def test_add_and_index_edges(self, now) -> None:
        store = GraphStore()
        store.add_edge(_edge("e1", "a", "b", now))
        store.add_edge(_edge("e2", "a", None, now, content_id="c2"))

        assert store.edge_count() == 2
        assert store.get_edge("e1").target == "b"
        assert [e.event_id for e in store.edges_for_content("c1")] == ["e1"]
        assert len(store.outgoing("a")) == 2
        assert len(store.outgoing("a", content_id="c2")) == 1
        assert store.distinct_targets("a") == {"b"}
        assert store.sent_content("a") == {"c1", "c2"}
        assert store.received_content("b") == {"c1"}

    def test_duplicate_event_id_rejected(self, now) -> None:
        store = GraphStore()
        store.add_edge(_edge("e1", "a", "b", now))
        with pytest.raises(ValueError, match="already recorded"):
            store.add_edge(_edge("e1", "b", "c", now))

    def test_self_loop_not_counted_as_reach(self, now) -> None:
        store = GraphStore()
        store.add_edge(_edge("e1", "a", "a", now))
        assert store.distinct_targets("a") == set()

    def test_downstream_filters_by_content(self, now) -> None:
        store = GraphStore()
        store.add_edge(_edge("e1", "a", "b", now, content_id="c1"))
        store.add_edge(_edge("e2", "b", "c", now, content_id="c2"))

        assert store.get_downstream("a", 6) == [("b", 1), ("c", 2)]
        assert store.get_downstream("a", 6, content_id="c1") == [("b", 1)]


class TestSchemas:
    def test_edge_weight_must_be_positive(self, now) -> None:
        with pytest.raises(ValueError):
            _edge("e1", "a", "b", now, weight=0.0)

    def test_event_rejects_unknown_type(self) -> None:
        with pytest.raises(ValueError, match="interaction_type"):
            PropagationEvent(
                event_id="e1",
                content_id="c1",
                source_account="a",
                source_platform="twitter",
                target_platform="twitter",
                interaction_type="teleport",
            )

    def test_profile_range_checked(self) -> None:
        with pytest.raises(ValueError):
            NodeProfile(influence_weight=1.5)

    def test_parse_event_payload(self) -> None:
        event = parse_propagation_event({
            "event_id": "e7",
            "content_id": "c1",
            "source_account": "alice",
            "source_platform": "twitter",
            "target_account": "bob",
            "target_platform": "linkedin",
            "interaction_type": "quote",
            "timestamp": "2024-06-01T12:00:00",
            "source_profile": {"influence_weight": 0.9, "reach": 100},
        })
        assert event.is_cross_platform
        assert event.timestamp.tzinfo is not None
        assert event.source_profile.reach == 100
        assert event.target_node_id == "linkedin:bob"

    def test_parse_event_missing_field(self) -> None:
        with pytest.raises(InputValidationError) as exc_info:
            parse_propagation_event({"event_id": "e8", "content_id": "c1"})
        assert exc_info.value.context["event_id"] == "e8"


class TestLoopStrength:
    def test_no_edges(self, now) -> None:
        m = measure_loop_strength([], max_hops=3, reference_time=now)
        assert m.loop_strength == 0.0

    def test_three_hop_cycle(self, now) -> None:
        edges = [_edge("e1", "a", "b", now), _edge("e2", "b", "c", now), _edge("e3", "c", "a", now)]
        m = measure_loop_strength(edges, max_hops=3, reference_time=now)
        assert m.reciprocity == pytest.approx(1.0)

    def test_cycle_longer_than_limit_ignored(self, now) -> None:
        names = ["a", "b", "c", "d", "e"]
        edges = [
            _edge(f"e{i}", src, dst, now)
            for i, (src, dst) in enumerate(zip(names, names[1:] + names[:1]))
        ]
        m = measure_loop_strength(edges, max_hops=3, reference_time=now)
        assert m.reciprocity == 0.0

    def test_convergence(self, now) -> None:
        edges = [_edge("e1", "a", "c", now), _edge("e2", "b", "c", now)]
        m = measure_loop_strength(edges, max_hops=3, reference_time=now)
        assert m.convergence == pytest.approx(1 / 3)

    def test_freshness_decays_with_age(self, now) -> None:
        edges = [_edge("e1", "a", "b", now)]
        m = measure_loop_strength(edges, max_hops=3, reference_time=now + timedelta(hours=100))
        assert m.freshness == pytest.approx(0.5)
        m = measure_loop_strength(edges, max_hops=3, reference_time=now + timedelta(hours=10**6))
        assert m.freshness == pytest.approx(0.1)

    def test_capped_at_one(self, now) -> None:
        edges = [
            _edge("e1", "a", "b", now),
            _edge("e2", "b", "a", now),
            _edge("e3", "c", "a", now),
            _edge("e4", "c", "b", now),
            _edge("e5", "a", "c", now),
        ]
        m = measure_loop_strength(edges, max_hops=3, reference_time=now)
        assert 0.0 <= m.loop_strength <= 1.0
