"""Reward allocation service.

Turns scoring and propagation outcomes into RewardTransactions and charges
them against the period's sub-pools. When a sub-pool cannot cover a reward
the transaction is deferred, never truncated: it waits in a FIFO queue and
is retried when the next period opens.

Transactions are idempotent on (recipient, reward type, source reference):
asking for the same reward twice returns the first transaction.

Example:
    allocator = RewardAllocator(score_history, graph)
    await allocator.start_period("2024-06-01")
    tx = await allocator.award_creation("c1", early_engagement=2.0)
    tx.status  # → TransactionStatus.ALLOCATED
"""

import asyncio
import uuid
from collections import deque
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import structlog

from echolayer.errors import InputValidationError, PoolExhaustedError
from echolayer.graph.propagation import PropagationGraph
from echolayer.observability.metrics import get_metrics
from echolayer.scoring.history import ScoreHistory

from .calculator import RewardCalculator
from .config import RewardConfig
from .pool import RewardPool, quantize_amount
from .schemas import (
    PoolStatus,
    RewardAnalytics,
    RewardTransaction,
    RewardType,
    TransactionStatus,
    UserRewardStats,
)

logger = structlog.get_logger(__name__)

# Reward types whose source reference is a content id; the rest reference
# propagation events, except community grants which may reference either.
_CONTENT_REFERENCED = frozenset({
    RewardType.CONTENT_CREATION,
    RewardType.DISCOVERY,
    RewardType.QUALITY_BONUS,
})
_EVENT_REFERENCED = frozenset({
    RewardType.PROPAGATION,
    RewardType.LOOP_PARTICIPATION,
})


def _utc_period(now: datetime | None = None) -> str:
    return (now or datetime.now(timezone.utc)).astimezone(timezone.utc).date().isoformat()


class RewardAllocator:
    """Bounded, idempotent reward allocation over a per-period pool."""

    def __init__(
        self,
        scores: ScoreHistory,
        graph: PropagationGraph,
        config: RewardConfig | None = None,
        *,
        pool: RewardPool | None = None,
        calculator: RewardCalculator | None = None,
    ) -> None:
        self._scores = scores
        self._graph = graph
        self._config = config or RewardConfig()
        self._pool = pool or RewardPool(self._config)
        self._calculator = calculator or RewardCalculator(self._config)

        self._transactions: dict[str, RewardTransaction] = {}
        self._by_key: dict[tuple[str, RewardType, str], str] = {}
        self._deferred: deque[str] = deque()
        self._stats: dict[str, UserRewardStats] = {}
        self._period_lock = asyncio.Lock()

    @property
    def config(self) -> RewardConfig:
        return self._config

    @property
    def calculator(self) -> RewardCalculator:
        return self._calculator

    @property
    def period(self) -> str | None:
        return self._pool.period

    # ------------------------------------------------------------------
    # Periods
    # ------------------------------------------------------------------

    async def start_period(
        self,
        period: str,
        budget: Decimal | None = None,
    ) -> list[RewardTransaction]:
        """Open a new period and retry deferred rewards in FIFO order.

        Deferred transactions that still do not fit stay deferred, keeping
        their place in the queue. Starting the current period again does not
        refill the pool; it only retries the queue against what is left.

        Returns:
            Deferred transactions that were allocated by this call.

        Raises:
            InputValidationError: The period is earlier than the current one,
                is not an ISO date, or the budget is not positive.
        """
        metrics = get_metrics()
        allocated: list[RewardTransaction] = []

        async with self._period_lock:
            async with self._pool.exclusive():
                if period == self._pool.period:
                    logger.info("Reward period already open", period=period)
                else:
                    self._pool.reset(period, budget)

                still_deferred: deque[str] = deque()
                while self._deferred:
                    tx = self._transactions[self._deferred.popleft()]
                    try:
                        self._pool.take(tx.sub_pool, tx.amount)
                    except PoolExhaustedError:
                        tx.transition_to(TransactionStatus.DEFERRED)
                        still_deferred.append(tx.tx_id)
                        continue
                    self._mark_allocated(tx)
                    allocated.append(tx)
                self._deferred = still_deferred

        metrics.set_deferred_queue_depth(len(self._deferred))
        self._publish_pool_gauges()
        logger.info(
            "Reward period started",
            period=period,
            budget=str(self._pool.budget),
            retried=len(allocated),
            still_deferred=len(self._deferred),
        )
        return allocated

    async def _ensure_period(self) -> None:
        if self._pool.period is not None:
            return
        async with self._period_lock:
            if self._pool.period is not None:
                return
            period = _utc_period()
            async with self._pool.exclusive():
                self._pool.reset(period)
            logger.info("Reward period opened on first allocation", period=period)

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def _reference_exists(self, reward_type: RewardType, source_ref: str) -> bool:
        is_content = self._scores.has_content(source_ref)
        is_event = self._graph.get_edge(source_ref) is not None
        if reward_type in _CONTENT_REFERENCED:
            return is_content
        if reward_type in _EVENT_REFERENCED:
            return is_event
        return is_content or is_event

    async def allocate(
        self,
        recipient: str,
        reward_type: RewardType,
        source_ref: str,
        amount: Decimal | float,
    ) -> RewardTransaction:
        """Create a transaction and charge it to its sub-pool.

        A repeat request for the same (recipient, type, reference) returns
        the existing transaction without charging the pool again.

        Raises:
            InputValidationError: Non-positive amount, or the reference is
                not a known content item or propagation event.
        """
        key = (recipient, reward_type, source_ref)
        existing_id = self._by_key.get(key)
        if existing_id is not None:
            logger.debug(
                "Duplicate reward request",
                tx_id=existing_id,
                recipient=recipient,
                reward_type=reward_type.value,
                source_ref=source_ref,
            )
            return self._transactions[existing_id]

        amount = quantize_amount(amount)
        if amount <= 0:
            raise InputValidationError(
                f"Reward amount must be positive, got {amount}",
                recipient=recipient,
                reward_type=reward_type.value,
                source_ref=source_ref,
                amount=str(amount),
            )
        if not self._reference_exists(reward_type, source_ref):
            raise InputValidationError(
                f"Unknown reward reference {source_ref!r}",
                recipient=recipient,
                reward_type=reward_type.value,
                source_ref=source_ref,
            )

        tx = RewardTransaction(
            tx_id=uuid.uuid4().hex,
            recipient=recipient,
            amount=amount,
            reward_type=reward_type,
            source_ref=source_ref,
        )
        # Registered before the first await so a concurrent duplicate sees it
        self._transactions[tx.tx_id] = tx
        self._by_key[key] = tx.tx_id

        await self._ensure_period()
        metrics = get_metrics()
        try:
            await self._pool.debit(tx.sub_pool, amount)
        except PoolExhaustedError as exc:
            tx.transition_to(TransactionStatus.DEFERRED)
            self._deferred.append(tx.tx_id)
            self._stats_for(recipient).add_pending(tx)
            metrics.record_reward(reward_type.value, tx.status.value)
            metrics.set_deferred_queue_depth(len(self._deferred))
            logger.info(
                "Reward deferred",
                tx_id=tx.tx_id,
                recipient=recipient,
                reward_type=reward_type.value,
                amount=str(amount),
                **exc.context,
            )
        else:
            self._mark_allocated(tx)
            logger.debug(
                "Reward allocated",
                tx_id=tx.tx_id,
                recipient=recipient,
                reward_type=reward_type.value,
                amount=str(amount),
                period=tx.period,
            )

        self._publish_pool_gauges()
        return tx

    def _stats_for(self, recipient: str) -> UserRewardStats:
        return self._stats.setdefault(recipient, UserRewardStats(recipient))

    def _mark_allocated(self, tx: RewardTransaction) -> None:
        stats = self._stats_for(tx.recipient)
        if tx.status == TransactionStatus.DEFERRED:
            stats.remove_pending(tx)
        tx.transition_to(TransactionStatus.ALLOCATED)
        tx.period = self._pool.period
        stats.add(tx)
        get_metrics().record_reward(
            tx.reward_type.value,
            tx.status.value,
            sub_pool=tx.sub_pool.value,
            amount=float(tx.amount),
        )

    def _publish_pool_gauges(self) -> None:
        metrics = get_metrics()
        for name, status in self._pool.status().sub_pools.items():
            metrics.set_sub_pool_remaining(name.value, float(status.remaining))

    # ------------------------------------------------------------------
    # Reward flows
    # ------------------------------------------------------------------

    async def award_creation(
        self,
        content_id: str,
        *,
        early_engagement: float = 0.0,
    ) -> RewardTransaction | None:
        """Creation reward for a scored content item's creator.

        Returns:
            The transaction, or None when the computed amount is zero.
        """
        item = self._scores.get_item(content_id)
        score = self._scores.latest(content_id)
        if item is None or score is None:
            raise InputValidationError(
                f"Content {content_id!r} has not been scored", content_id=content_id
            )
        amount = self._calculator.creation_reward(score.composite, score.qf, early_engagement)
        return await self._allocate_computed(
            item.creator_id, RewardType.CONTENT_CREATION, content_id, amount
        )

    async def award_propagation(self, event_id: str) -> list[RewardTransaction]:
        """Propagation reward for the propagator of a recorded event.

        When the content is in a strong loop the creator also receives a
        share of the reward as loop participation.
        """
        edge = self._graph.get_edge(event_id)
        if edge is None:
            raise InputValidationError(
                f"Propagation event {event_id!r} is not recorded", event_id=event_id
            )
        score = self._scores.latest(edge.content_id)
        item = self._scores.get_item(edge.content_id)
        node = self._graph.get_node(edge.source)
        resonance = self._graph.get_resonance(edge.content_id)
        loop_strength = resonance.loop_strength if resonance is not None else 0.0

        amount = self._calculator.propagation_reward(
            score.composite,
            edge.weight,
            node.influence_weight,
            loop_strength,
        )

        transactions = []
        tx = await self._allocate_computed(
            node.account_id, RewardType.PROPAGATION, event_id, amount
        )
        if tx is not None:
            transactions.append(tx)

        if (
            item is not None
            and item.creator_id != node.account_id
            and loop_strength > self._config.loop_bonus_threshold
        ):
            creator_tx = await self._allocate_computed(
                item.creator_id,
                RewardType.LOOP_PARTICIPATION,
                event_id,
                self._calculator.creator_share(amount),
            )
            if creator_tx is not None:
                transactions.append(creator_tx)

        return transactions

    async def award_discovery(
        self,
        content_id: str,
        discoverer: str,
        *,
        discovery_timing: float,
        discoverer_influence: float,
    ) -> RewardTransaction | None:
        """Discovery bonus for surfacing a scored content item early."""
        score = self._scores.latest(content_id)
        if score is None:
            raise InputValidationError(
                f"Content {content_id!r} has not been scored", content_id=content_id
            )
        amount = self._calculator.discovery_bonus(
            score.composite, discovery_timing, discoverer_influence
        )
        return await self._allocate_computed(
            discoverer, RewardType.DISCOVERY, content_id, amount
        )

    async def award_quality_bonus(
        self,
        content_id: str,
        improvement: float,
        *,
        viral_coefficient: float = 0.0,
        engagement_rate: float = 0.0,
        retention_rate: float = 0.0,
    ) -> RewardTransaction | None:
        """Quality bonus for the creator of an improved content item."""
        item = self._scores.get_item(content_id)
        if item is None:
            raise InputValidationError(
                f"Content {content_id!r} has not been scored", content_id=content_id
            )
        amount = self._calculator.quality_bonus(
            improvement, viral_coefficient, engagement_rate, retention_rate
        )
        return await self._allocate_computed(
            item.creator_id, RewardType.QUALITY_BONUS, content_id, amount
        )

    async def grant_community_contribution(
        self,
        recipient: str,
        source_ref: str,
        amount: Decimal | float,
    ) -> RewardTransaction:
        """Operator grant drawn from the reserve sub-pool."""
        return await self.allocate(
            recipient, RewardType.COMMUNITY_CONTRIBUTION, source_ref, amount
        )

    async def _allocate_computed(
        self,
        recipient: str,
        reward_type: RewardType,
        source_ref: str,
        amount: float,
    ) -> RewardTransaction | None:
        if quantize_amount(amount) <= 0:
            logger.debug(
                "Zero reward skipped",
                recipient=recipient,
                reward_type=reward_type.value,
                source_ref=source_ref,
            )
            return None
        return await self.allocate(recipient, reward_type, source_ref, amount)

    # ------------------------------------------------------------------
    # Ledger outcomes
    # ------------------------------------------------------------------

    def mark_dispatched(self, tx_id: str) -> RewardTransaction:
        """Record that the ledger accepted an allocated transaction."""
        tx = self.get_transaction(tx_id)
        if tx.status != TransactionStatus.ALLOCATED:
            raise ValueError(
                f"Only allocated transactions can be dispatched, {tx_id} is {tx.status.value}"
            )
        tx.dispatched = True
        return tx

    def mark_failed(self, tx_id: str, reason: str) -> RewardTransaction:
        """Terminal failure after a ledger rejection.

        The amount is not returned to the pool and the transaction is never
        retried.
        """
        tx = self.get_transaction(tx_id)
        was_allocated = tx.status == TransactionStatus.ALLOCATED
        tx.transition_to(TransactionStatus.FAILED, reason=reason)
        if was_allocated:
            self._stats[tx.recipient].remove(tx)

        metrics = get_metrics()
        metrics.record_reward(tx.reward_type.value, tx.status.value)
        metrics.record_ledger_failure(tx.reward_type.value)
        logger.error(
            "Reward transaction failed",
            tx_id=tx.tx_id,
            recipient=tx.recipient,
            reward_type=tx.reward_type.value,
            source_ref=tx.source_ref,
            amount=str(tx.amount),
            reason=reason,
        )
        return tx

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_transaction(self, tx_id: str) -> RewardTransaction:
        try:
            return self._transactions[tx_id]
        except KeyError:
            raise KeyError(f"Unknown transaction {tx_id!r}") from None

    def transactions(
        self, status: TransactionStatus | None = None
    ) -> list[RewardTransaction]:
        """Transactions in creation order, optionally filtered by status."""
        txs = list(self._transactions.values())
        if status is not None:
            txs = [tx for tx in txs if tx.status == status]
        return txs

    def undispatched(self) -> list[RewardTransaction]:
        """Allocated transactions the ledger has not yet accepted."""
        return [
            tx for tx in self._transactions.values()
            if tx.status == TransactionStatus.ALLOCATED and not tx.dispatched
        ]

    def deferred_queue(self) -> list[RewardTransaction]:
        """Deferred transactions in retry order."""
        return [self._transactions[tx_id] for tx_id in self._deferred]

    def pool_status(self) -> PoolStatus:
        return self._pool.status()

    def user_stats(self, recipient: str) -> UserRewardStats:
        return self._stats.get(recipient) or UserRewardStats(recipient)

    def leaderboard(
        self, limit: int = 10, now: datetime | None = None
    ) -> list[UserRewardStats]:
        """Recipients with the highest allocated totals.

        Every recipient with an allocation is ranked, not only the returned
        top entries; velocity and multiplier are refreshed as of ``now``.
        """
        now = now or datetime.now(timezone.utc)
        for stats in self._stats.values():
            stats.rank = 0
            stats.refresh(now)
        ranked = sorted(
            (s for s in self._stats.values() if s.transaction_count > 0),
            key=lambda s: (-s.total, s.recipient),
        )
        for position, stats in enumerate(ranked, start=1):
            stats.rank = position
        return ranked[:limit]

    def analytics(self, since: datetime | None = None) -> RewardAnalytics:
        """Aggregates over transactions created since the cutoff (default 24h)."""
        if since is None:
            since = datetime.now(timezone.utc) - timedelta(hours=24)
        recent = [tx for tx in self._transactions.values() if tx.created_at >= since]

        by_status: dict[str, int] = {s.value: 0 for s in TransactionStatus}
        by_type: dict[str, Decimal] = {}
        allocated_total = Decimal("0")
        for tx in recent:
            by_status[tx.status.value] += 1
            if tx.status == TransactionStatus.ALLOCATED:
                allocated_total += tx.amount
                key = tx.reward_type.value
                by_type[key] = by_type.get(key, Decimal("0")) + tx.amount

        return RewardAnalytics(
            transaction_count=len(recent),
            allocated_total=allocated_total,
            by_status=by_status,
            by_type=by_type,
            unique_recipients=len({tx.recipient for tx in recent}),
            deferred_queue_depth=len(self._deferred),
            pool=self._pool.status(),
        )

