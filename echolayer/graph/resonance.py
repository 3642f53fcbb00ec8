"""Loop strength measurement for a content item's propagation slice.

Loop strength combines three signals over the edges of one content item:

    reciprocity = weight of edges closing a cycle of <= max_hops hops / total weight
    convergence = nodes reached by >= 2 distinct sources / nodes touched
    freshness   = max(0.1, 1 / (1 + 0.01 * age_hours))

    loop_strength = min(1, 0.5 * reciprocity + 0.3 * convergence + 0.2 * freshness)

Broadcast shares (no target) count toward freshness only. Self-propagation
never counts as reciprocity.
"""

from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from .schemas import PropagationEdge


@dataclass(frozen=True)
class LoopMeasurement:
    """Components of a loop strength reading."""

    loop_strength: float
    reciprocity: float
    convergence: float
    freshness: float


def _reaches_within(
    adjacency: dict[str, set[str]],
    start: str,
    goal: str,
    max_hops: int,
) -> bool:
    """Whether goal is reachable from start in at most max_hops hops."""
    if max_hops <= 0:
        return False
    visited = {start}
    frontier = deque([(start, 0)])
    while frontier:
        node, depth = frontier.popleft()
        for nxt in adjacency.get(node, ()):
            if nxt == goal:
                return True
            if nxt in visited or depth + 1 >= max_hops:
                continue
            visited.add(nxt)
            frontier.append((nxt, depth + 1))
    return False


def measure_loop_strength(
    edges: Sequence[PropagationEdge],
    *,
    max_hops: int,
    reference_time: datetime,
) -> LoopMeasurement:
    """Measure reciprocal amplification over one content item's edges.

    Args:
        edges: All edges recorded for the content item.
        max_hops: Longest cycle (in hops) counted as back-and-forth.
        reference_time: Time the reading is taken at; the latest event
            timestamp keeps replays deterministic.
    """
    if not edges:
        return LoopMeasurement(0.0, 0.0, 0.0, 0.0)

    directed = [
        e for e in edges if e.target is not None and e.target != e.source
    ]

    adjacency: dict[str, set[str]] = defaultdict(set)
    sources_of: dict[str, set[str]] = defaultdict(set)
    nodes: set[str] = set()
    for edge in directed:
        adjacency[edge.source].add(edge.target)
        sources_of[edge.target].add(edge.source)
        nodes.update((edge.source, edge.target))

    total_weight = sum(e.weight for e in directed)
    looping_weight = sum(
        e.weight
        for e in directed
        # The closing edge itself is the last hop of the cycle
        if _reaches_within(adjacency, e.target, e.source, max_hops - 1)
    )
    reciprocity = looping_weight / total_weight if total_weight > 0 else 0.0

    converged = sum(1 for n in nodes if len(sources_of.get(n, ())) >= 2)
    convergence = converged / len(nodes) if nodes else 0.0

    first_seen = min(e.timestamp for e in edges)
    age_hours = max(0.0, (reference_time - first_seen).total_seconds() / 3600.0)
    freshness = max(0.1, 1.0 / (1.0 + 0.01 * age_hours))

    loop_strength = min(1.0, 0.5 * reciprocity + 0.3 * convergence + 0.2 * freshness)
    return LoopMeasurement(
        loop_strength=loop_strength,
        reciprocity=reciprocity,
        convergence=convergence,
        freshness=freshness,
    )
