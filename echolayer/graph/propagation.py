"""Propagation graph service.

Records propagation events as weighted edges between identities, keeps each
node's derived metrics current, and measures resonance loops per content item.

Edge weight:

    weight = (0.4 * source_influence
              + 0.2 * min(1, ln(source_reach) / 20)
              + 0.3 * source_engagement
              + 0.3 * target_engagement) * interaction_strength

Edges whose source and target platforms differ are further multiplied by
the cross-platform transfer factor.

Example:
    graph = PropagationGraph(score_history)
    outcome = await graph.record_event(PropagationEvent(...))
    graph.is_resonant("c1")
"""

import logging
import math
from collections import defaultdict
from contextlib import AsyncExitStack
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable

from echolayer.errors import GraphInconsistencyError, InputValidationError
from echolayer.locks import KeyedLocks
from echolayer.observability.metrics import get_metrics
from echolayer.scoring.history import ScoreHistory

from .config import GraphConfig
from .resonance import measure_loop_strength
from .schemas import (
    NodeProfile,
    PropagationEdge,
    PropagationEvent,
    PropagationNode,
    PropagationOutcome,
    ResonanceState,
    make_node_id,
)
from .storage import GraphStore

logger = logging.getLogger(__name__)

# Mapping from interaction type to config field name
_STRENGTH_FIELD_MAP = {
    "share": "strength_share",
    "repost": "strength_repost",
    "quote": "strength_quote",
    "mention": "strength_mention",
    "link": "strength_link",
    "embed": "strength_embed",
    "cross_post": "strength_cross_post",
}

IdentityResolver = Callable[[str, str], NodeProfile | None]


def _period_of(timestamp: datetime) -> str:
    """UTC calendar date an event belongs to."""
    return timestamp.astimezone(timezone.utc).date().isoformat()


@dataclass(frozen=True)
class PropagationAnalytics:
    """Aggregate view of the propagation graph.

    Attributes:
        node_count: Identities in the graph.
        edge_count: Edges recorded (all time).
        recent_edges: Edges recorded since the cutoff.
        cross_platform_edges: Recent edges whose platforms differ.
        tracked_content: Content items with a resonance reading.
        resonant_content: Content items currently flagged resonant.
        average_loop_strength: Mean loop strength across tracked content.
        platform_pairs: Recent edge counts per "source->target" platform pair.
    """

    node_count: int
    edge_count: int
    recent_edges: int
    cross_platform_edges: int
    tracked_content: int
    resonant_content: int
    average_loop_strength: float
    platform_pairs: dict[str, int]

    def to_dict(self) -> dict:
        return {
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "recent_edges": self.recent_edges,
            "cross_platform_edges": self.cross_platform_edges,
            "tracked_content": self.tracked_content,
            "resonant_content": self.resonant_content,
            "average_loop_strength": round(self.average_loop_strength, 4),
            "platform_pairs": dict(self.platform_pairs),
        }


class PropagationGraph:
    """Directed, cyclic propagation graph with resonance detection.

    Events touching disjoint content and disjoint identities are recorded
    concurrently. Events for the same content item are serialized, and the
    identity locks of an event are taken in sorted order so two events never
    wait on each other's nodes.
    """

    def __init__(
        self,
        scores: ScoreHistory,
        config: GraphConfig | None = None,
        *,
        store: GraphStore | None = None,
        identity_resolver: IdentityResolver | None = None,
    ) -> None:
        self._scores = scores
        self._config = config or GraphConfig()
        self._store = store or GraphStore()
        self._resolve_identity = identity_resolver
        self._resonance: dict[str, ResonanceState] = {}
        self._content_locks = KeyedLocks()
        self._node_locks = KeyedLocks()

    @property
    def config(self) -> GraphConfig:
        return self._config

    @property
    def store(self) -> GraphStore:
        return self._store

    # ------------------------------------------------------------------
    # Weights
    # ------------------------------------------------------------------

    def strength_for(self, interaction_type: str) -> float:
        """Configured default strength for an interaction type."""
        field_name = _STRENGTH_FIELD_MAP.get(interaction_type)
        if field_name is None:
            raise InputValidationError(
                f"Unknown interaction type {interaction_type!r}",
                interaction_type=interaction_type,
            )
        return getattr(self._config, field_name)

    def compute_edge_weight(
        self,
        source_influence: float,
        source_reach: int,
        source_engagement: float,
        target_engagement: float,
        interaction_strength: float,
        *,
        cross_platform: bool = False,
    ) -> float:
        """Propagation weight of a single event.

        Broadcast shares have no target and contribute no target engagement.
        Cross-platform edges are attenuated by the transfer factor.
        """
        reach_term = (
            min(1.0, math.log(source_reach) / 20.0) if source_reach > 1 else 0.0
        )
        weight = (
            0.4 * source_influence
            + 0.2 * reach_term
            + 0.3 * source_engagement
            + 0.3 * target_engagement
        ) * interaction_strength
        if cross_platform:
            weight *= self._config.cross_platform_transfer_factor
        return weight

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def record_event(self, event: PropagationEvent) -> PropagationOutcome:
        """Record a propagation event and refresh the affected state.

        Raises:
            GraphInconsistencyError: The content item has never been scored.
            InputValidationError: Duplicate event id, unknown interaction
                type, or a non-positive interaction strength or weight.
        """
        metrics = get_metrics()
        latest_score = self._scores.latest(event.content_id)
        if latest_score is None:
            metrics.record_graph_rejection("graph_inconsistency")
            logger.warning(
                "Rejected propagation %s: content %s has no score",
                event.event_id,
                event.content_id,
            )
            raise GraphInconsistencyError(
                f"Content {event.content_id!r} has no attention score",
                event_id=event.event_id,
                content_id=event.content_id,
            )

        try:
            strength = (
                event.interaction_strength
                if event.interaction_strength is not None
                else self.strength_for(event.interaction_type)
            )
            if strength <= 0.0:
                raise InputValidationError(
                    f"interaction strength must be positive, got {strength}",
                    event_id=event.event_id,
                    interaction_strength=strength,
                )

            node_ids = sorted(
                {event.source_node_id}
                | ({event.target_node_id} if event.target_node_id else set())
            )
            async with self._content_locks.hold(event.content_id), AsyncExitStack() as stack:
                for node_id in node_ids:
                    await stack.enter_async_context(self._node_locks.hold(node_id))
                outcome = self._apply(event, strength, latest_score.composite)
        except InputValidationError:
            metrics.record_graph_rejection("input_validation")
            raise

        metrics.record_propagation(outcome.edge.is_cross_platform, self._store.node_count())
        if outcome.newly_resonant:
            metrics.record_resonance()
            logger.info(
                "Content %s is resonant for %s (loop_strength=%.3f)",
                event.content_id,
                outcome.resonance.period,
                outcome.resonance.loop_strength,
            )
        return outcome

    def _apply(
        self,
        event: PropagationEvent,
        strength: float,
        composite: float,
    ) -> PropagationOutcome:
        if self._store.has_event(event.event_id):
            raise InputValidationError(
                f"Event {event.event_id!r} already recorded",
                event_id=event.event_id,
            )

        source = self._ensure_node(
            event.source_account, event.source_platform, event.source_profile, event.timestamp
        )
        target = None
        if event.target_account is not None:
            target = self._ensure_node(
                event.target_account, event.target_platform, event.target_profile, event.timestamp
            )

        weight = self.compute_edge_weight(
            source.influence_weight,
            source.reach,
            source.engagement_rate,
            target.engagement_rate if target is not None else 0.0,
            strength,
            cross_platform=event.is_cross_platform,
        )
        if weight <= 0.0:
            raise InputValidationError(
                f"Computed edge weight must be positive, got {weight}",
                event_id=event.event_id,
                weight=weight,
            )

        edge = PropagationEdge(
            event_id=event.event_id,
            source=source.node_id,
            target=target.node_id if target is not None else None,
            content_id=event.content_id,
            source_platform=event.source_platform,
            target_platform=event.target_platform,
            interaction_type=event.interaction_type,
            weight=weight,
            timestamp=event.timestamp,
        )
        self._store.add_edge(edge)

        self._refresh_node(source, event.timestamp)
        if target is not None:
            self._refresh_node(target, event.timestamp)

        previous = self._resonance.get(event.content_id)
        resonance = self._measure(event.content_id, composite, event.timestamp)
        newly_resonant = resonance.resonant and (
            previous is None
            or not previous.resonant
            or previous.period != resonance.period
        )

        return PropagationOutcome(
            edge=edge,
            source_node=replace(source),
            target_node=replace(target) if target is not None else None,
            resonance=resonance,
            newly_resonant=newly_resonant,
        )

    def _ensure_node(
        self,
        account_id: str,
        platform: str,
        profile: NodeProfile | None,
        seen_at: datetime,
    ) -> PropagationNode:
        node_id = make_node_id(account_id, platform)
        node = self._store.get_node(node_id)

        if node is None:
            seed = profile
            if seed is None and self._resolve_identity is not None:
                seed = self._resolve_identity(account_id, platform)
            if seed is None:
                seed = NodeProfile(
                    influence_weight=self._config.default_influence,
                    reach=0,
                    engagement_rate=self._config.default_engagement_rate,
                )
            node = PropagationNode(
                account_id=account_id,
                platform=platform,
                influence_weight=seed.influence_weight,
                reach=seed.reach,
                engagement_rate=seed.engagement_rate,
                seed=seed,
                created_at=seen_at,
                updated_at=seen_at,
            )
            self._store.put_node(node)
            self._refresh_node(node, seen_at)
        elif profile is not None and profile != node.seed:
            node.seed = profile
            self._refresh_node(node, seen_at)

        return node

    def _refresh_node(self, node: PropagationNode, now: datetime) -> None:
        """Recompute derived metrics from the seed and recorded edges."""
        node_id = node.node_id
        seed = node.seed

        node.influence_weight = seed.influence_weight
        node.reach = seed.reach + len(self._store.distinct_targets(node_id))

        received = self._store.received_content(node_id)
        if received:
            relayed = len(received & self._store.sent_content(node_id))
            node.engagement_rate = min(
                1.0, 0.5 * seed.engagement_rate + 0.5 * relayed / len(received)
            )
        else:
            node.engagement_rate = seed.engagement_rate

        node.updated_at = now

    def _measure(
        self, content_id: str, composite: float, now: datetime
    ) -> ResonanceState:
        measurement = measure_loop_strength(
            self._store.edges_for_content(content_id),
            max_hops=self._config.resonance_max_hops,
            reference_time=now,
        )
        state = ResonanceState(
            content_id=content_id,
            loop_strength=measurement.loop_strength,
            reciprocity=measurement.reciprocity,
            convergence=measurement.convergence,
            freshness=measurement.freshness,
            resonant=measurement.loop_strength > self._config.resonance_threshold,
            period=_period_of(now),
            weighted_resonance=measurement.loop_strength * composite,
            updated_at=now,
        )
        self._resonance[content_id] = state
        return state

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> PropagationNode | None:
        node = self._store.get_node(node_id)
        return replace(node) if node is not None else None

    def get_edge(self, event_id: str) -> PropagationEdge | None:
        return self._store.get_edge(event_id)

    def edges_for_content(self, content_id: str) -> list[PropagationEdge]:
        return self._store.edges_for_content(content_id)

    def propagation_count(self, content_id: str) -> int:
        """Number of propagation events recorded for a content item."""
        return len(self._store.edges_for_content(content_id))

    def average_edge_weight(self, content_id: str) -> float:
        """Mean edge weight for a content item, 0.0 when it has no edges."""
        edges = self._store.edges_for_content(content_id)
        if not edges:
            return 0.0
        return sum(e.weight for e in edges) / len(edges)

    def _depth(self, max_depth: int | None) -> int:
        ceiling = self._config.max_traversal_depth
        if max_depth is None:
            return ceiling
        if max_depth < 1:
            raise InputValidationError(
                f"max_depth must be at least 1, got {max_depth}", max_depth=max_depth
            )
        return min(max_depth, ceiling)

    def traverse(
        self,
        start_node_id: str,
        max_depth: int | None = None,
        content_id: str | None = None,
    ) -> list[tuple[str, int]]:
        """Identities reachable downstream of a node within the hop limit.

        Depth is capped at the configured traversal ceiling. Terminates on
        cyclic graphs; each identity appears once at its shallowest depth.
        """
        return self._store.get_downstream(start_node_id, self._depth(max_depth), content_id)

    def traverse_upstream(
        self,
        start_node_id: str,
        max_depth: int | None = None,
        content_id: str | None = None,
    ) -> list[tuple[str, int]]:
        """Identities that propagated toward a node within the hop limit."""
        return self._store.get_upstream(start_node_id, self._depth(max_depth), content_id)

    def find_path(
        self,
        source: str,
        target: str,
        max_depth: int | None = None,
        content_id: str | None = None,
    ) -> list[str] | None:
        """Shortest propagation path between two identities, or None."""
        return self._store.find_path(source, target, self._depth(max_depth), content_id)

    def get_subgraph(
        self,
        node_id: str,
        depth: int = 2,
        content_id: str | None = None,
    ) -> dict:
        """Neighbourhood of a node in both directions."""
        return self._store.get_subgraph(node_id, self._depth(depth), content_id)

    def get_resonance(self, content_id: str) -> ResonanceState | None:
        return self._resonance.get(content_id)

    def is_resonant(self, content_id: str, period: str | None = None) -> bool:
        """Whether a content item is flagged resonant (for a given UTC date)."""
        state = self._resonance.get(content_id)
        if state is None or not state.resonant:
            return False
        return period is None or state.period == period

    def resonant_content(self, period: str | None = None) -> list[str]:
        """Content ids flagged resonant, strongest loop first."""
        states = [
            s for s in self._resonance.values()
            if s.resonant and (period is None or s.period == period)
        ]
        states.sort(key=lambda s: s.loop_strength, reverse=True)
        return [s.content_id for s in states]

    def analytics(self, since: datetime | None = None) -> PropagationAnalytics:
        """Graph-wide aggregates; edge counts are limited to events since the cutoff."""
        if since is None:
            since = datetime.now(timezone.utc) - timedelta(hours=24)

        recent = [e for e in self._store.edges() if e.timestamp >= since]
        pairs: dict[str, int] = defaultdict(int)
        for edge in recent:
            pairs[f"{edge.source_platform}->{edge.target_platform}"] += 1

        states = list(self._resonance.values())
        avg_strength = (
            sum(s.loop_strength for s in states) / len(states) if states else 0.0
        )

        return PropagationAnalytics(
            node_count=self._store.node_count(),
            edge_count=self._store.edge_count(),
            recent_edges=len(recent),
            cross_platform_edges=sum(1 for e in recent if e.is_cross_platform),
            tracked_content=len(states),
            resonant_content=sum(1 for s in states if s.resonant),
            average_loop_strength=avg_strength,
            platform_pairs=dict(pairs),
        )

    def prune_resonance(self, now: datetime | None = None) -> int:
        """Drop resonance readings that are stale or too weak to matter.

        Edges and nodes are kept; a later event for a pruned content item
        recomputes its reading from the full edge history.

        Returns:
            Number of readings removed.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=self._config.resonance_max_age_hours)

        expired = [
            content_id
            for content_id, state in self._resonance.items()
            if state.updated_at < cutoff
            or state.loop_strength <= self._config.resonance_min_strength
        ]
        for content_id in expired:
            del self._resonance[content_id]

        if expired:
            logger.info("Pruned %d resonance readings", len(expired))
        return len(expired)
