"""Propagation graph and resonance detection.

Components:
- PropagationGraph: Records propagation events, keeps node metrics current,
  flags resonant content and answers bounded traversal queries
- GraphStore: In-memory node/edge arena with cycle-safe BFS traversals
- measure_loop_strength: Reciprocity/convergence/freshness loop measurement
- GraphConfig: Pydantic settings with GRAPH_ prefix

Usage:
    from echolayer.graph import PropagationEvent, PropagationGraph

    graph = PropagationGraph(score_history)
    outcome = await graph.record_event(
        PropagationEvent(
            event_id="e1",
            content_id="c1",
            source_account="alice",
            source_platform="twitter",
            target_account="bob",
            target_platform="twitter",
        )
    )
"""

from echolayer.graph.config import GraphConfig
from echolayer.graph.propagation import PropagationAnalytics, PropagationGraph
from echolayer.graph.resonance import LoopMeasurement, measure_loop_strength
from echolayer.graph.schemas import (
    NodeProfile,
    PropagationEdge,
    PropagationEvent,
    PropagationNode,
    PropagationOutcome,
    ResonanceState,
    make_node_id,
    parse_propagation_event,
)
from echolayer.graph.storage import GraphStore

__all__ = [
    "GraphConfig",
    "GraphStore",
    "LoopMeasurement",
    "NodeProfile",
    "PropagationAnalytics",
    "PropagationEdge",
    "PropagationEvent",
    "PropagationGraph",
    "PropagationNode",
    "PropagationOutcome",
    "ResonanceState",
    "make_node_id",
    "measure_loop_strength",
    "parse_propagation_event",
]
