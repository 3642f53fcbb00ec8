"""
Attention pipeline - wires scoring, propagation and rewards together.

Each stage runs in its own trace span so one content item can be followed
from its first snapshot to its ledger hand-off.

Pipeline stages:
1. Scoring (append a new AttentionScore version)
2. Propagation (record the edge, refresh nodes, measure resonance)
3. Allocation (charge rewards to the period's sub-pools)
4. Ledger dispatch (optional, timeout-bounded)

Usage:
    pipeline = AttentionPipeline()
    await pipeline.start_period("2024-06-01")
    result = await pipeline.ingest_content(item)
    await pipeline.ingest_propagation(event)
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import structlog

from echolayer.graph.config import GraphConfig
from echolayer.graph.propagation import IdentityResolver, PropagationGraph
from echolayer.graph.schemas import PropagationEvent, PropagationOutcome
from echolayer.observability.logging import log_context
from echolayer.observability.tracing import get_tracer, traced
from echolayer.rewards.allocator import RewardAllocator
from echolayer.rewards.config import RewardConfig
from echolayer.rewards.ledger import DispatchReport, LedgerClient, LedgerDispatcher
from echolayer.rewards.schemas import RewardTransaction
from echolayer.scoring.config import ScoringConfig
from echolayer.scoring.engine import ScoreEngine
from echolayer.scoring.history import ScoreHistory
from echolayer.scoring.schemas import AttentionScore, ContentItem

logger = structlog.get_logger(__name__)


@dataclass
class ContentResult:
    """Outcome of ingesting one content snapshot."""

    score: AttentionScore
    reward: RewardTransaction | None = None


@dataclass
class PropagationResult:
    """Outcome of ingesting one propagation event."""

    outcome: PropagationOutcome
    rewards: list[RewardTransaction] = field(default_factory=list)


class AttentionPipeline:
    """
    Orchestrates the attention core for a stream of snapshots and events.

    The core itself performs no I/O; only the optional ledger client is
    called, and always under the collaborator timeout.
    """

    def __init__(
        self,
        scoring_config: ScoringConfig | None = None,
        graph_config: GraphConfig | None = None,
        reward_config: RewardConfig | None = None,
        *,
        ledger: LedgerClient | None = None,
        identity_resolver: IdentityResolver | None = None,
        ledger_timeout_seconds: float | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            scoring_config: Scoring weights and boost (or load from env)
            graph_config: Graph and resonance tuning (or load from env)
            reward_config: Budget split and formula constants (or load from env)
            ledger: Payout ledger collaborator; dispatch is disabled without one
            identity_resolver: Seed lookup for identities first seen in events
            ledger_timeout_seconds: Override for the collaborator timeout
        """
        self.scores = ScoreHistory(ScoreEngine(scoring_config))
        self.graph = PropagationGraph(
            self.scores, graph_config, identity_resolver=identity_resolver
        )
        self.allocator = RewardAllocator(self.scores, self.graph, reward_config)
        self.dispatcher = (
            LedgerDispatcher(self.allocator, ledger, ledger_timeout_seconds)
            if ledger is not None
            else None
        )
        self._tracer = get_tracer(__name__)

    async def start_period(
        self, period: str, budget: Decimal | None = None
    ) -> list[RewardTransaction]:
        """Roll the reward pool over; deferred rewards are retried first."""
        with log_context(period=period), traced(
            self._tracer, "start_period", {"period": period}
        ):
            return await self.allocator.start_period(period, budget)

    async def ingest_content(
        self,
        item: ContentItem,
        *,
        now: datetime | None = None,
        early_engagement: float = 0.0,
        award: bool = True,
    ) -> ContentResult:
        """
        Score a content snapshot and, on its first version, award creation.

        Raises:
            InsufficientDataError: The snapshot is not yet scorable.
            InputValidationError: The snapshot is malformed.
        """
        with log_context(content_id=item.content_id):
            return await self._ingest_content(item, now, early_engagement, award)

    async def _ingest_content(
        self,
        item: ContentItem,
        now: datetime | None,
        early_engagement: float,
        award: bool,
    ) -> ContentResult:
        with traced(
            self._tracer,
            "score_content",
            {"content_id": item.content_id, "platform": item.platform},
        ) as span:
            score = await self.scores.rescore(item, now=now)
            span.set_attribute("composite", score.composite)
            span.set_attribute("version", score.version)

        result = ContentResult(score=score)
        if award and score.version == 1:
            with traced(self._tracer, "allocate_creation", {"content_id": item.content_id}):
                result.reward = await self.allocator.award_creation(
                    item.content_id, early_engagement=early_engagement
                )
        return result

    async def ingest_propagation(
        self,
        event: PropagationEvent,
        *,
        award: bool = True,
    ) -> PropagationResult:
        """
        Record a propagation event and award the propagator.

        Raises:
            GraphInconsistencyError: The content item has no score yet.
            InputValidationError: The event is malformed or a duplicate.
        """
        with log_context(event_id=event.event_id, content_id=event.content_id):
            return await self._ingest_propagation(event, award)

    async def _ingest_propagation(
        self, event: PropagationEvent, award: bool
    ) -> PropagationResult:
        with traced(
            self._tracer,
            "record_propagation",
            {
                "event_id": event.event_id,
                "content_id": event.content_id,
                "cross_platform": event.is_cross_platform,
            },
        ) as span:
            outcome = await self.graph.record_event(event)
            span.set_attribute("edge_weight", outcome.edge.weight)
            span.set_attribute("loop_strength", outcome.resonance.loop_strength)

        result = PropagationResult(outcome=outcome)
        if award:
            with traced(self._tracer, "allocate_propagation", {"event_id": event.event_id}):
                result.rewards = await self.allocator.award_propagation(event.event_id)
        return result

    async def record_discovery(
        self,
        content_id: str,
        discoverer: str,
        *,
        discovery_timing: float,
        discoverer_influence: float,
    ) -> RewardTransaction | None:
        with traced(self._tracer, "allocate_discovery", {"content_id": content_id}):
            return await self.allocator.award_discovery(
                content_id,
                discoverer,
                discovery_timing=discovery_timing,
                discoverer_influence=discoverer_influence,
            )

    async def dispatch_rewards(self) -> DispatchReport | None:
        """Hand allocated rewards to the ledger, if one is configured."""
        if self.dispatcher is None:
            return None
        with traced(self._tracer, "ledger_dispatch"):
            return await self.dispatcher.dispatch_pending()

    def summary(self, since: datetime | None = None) -> dict[str, Any]:
        """JSON-serializable snapshot of scoring, graph and reward state."""
        if since is None:
            since = datetime.now(timezone.utc) - timedelta(hours=24)

        latest = [self.scores.latest(cid) for cid in self.scores.content_ids()]
        top = sorted(
            (s for s in latest if s is not None),
            key=lambda s: s.composite,
            reverse=True,
        )
        return {
            "scores": {
                "content_count": len(latest),
                "top": [
                    {
                        "content_id": s.content_id,
                        "composite": round(s.composite, 4),
                        "version": s.version,
                        "resonant": self.graph.is_resonant(s.content_id),
                    }
                    for s in top[:10]
                ],
            },
            "graph": self.graph.analytics(since).to_dict(),
            "rewards": self.allocator.analytics(since).to_dict(),
            "leaderboard": [s.to_dict() for s in self.allocator.leaderboard()],
        }
