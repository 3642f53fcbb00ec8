"""Data models for reward allocation.

A RewardTransaction moves through a small state machine:

    pending  -> allocated | deferred | failed
    deferred -> allocated | deferred
    allocated -> failed

Status transitions are the only mutation a transaction permits.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from echolayer.errors import InputValidationError


class RewardType(str, Enum):
    """Reason a reward was granted."""

    CONTENT_CREATION = "content_creation"
    PROPAGATION = "propagation"
    LOOP_PARTICIPATION = "loop_participation"
    DISCOVERY = "discovery"
    QUALITY_BONUS = "quality_bonus"
    COMMUNITY_CONTRIBUTION = "community_contribution"


class SubPool(str, Enum):
    """Independent per-period budget counters."""

    CREATION = "creation"
    PROPAGATION = "propagation"
    DISCOVERY = "discovery"
    QUALITY_BONUS = "quality_bonus"
    RESERVE = "reserve"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    ALLOCATED = "allocated"
    DEFERRED = "deferred"
    FAILED = "failed"


SUB_POOL_FOR: dict[RewardType, SubPool] = {
    RewardType.CONTENT_CREATION: SubPool.CREATION,
    RewardType.PROPAGATION: SubPool.PROPAGATION,
    RewardType.LOOP_PARTICIPATION: SubPool.PROPAGATION,
    RewardType.DISCOVERY: SubPool.DISCOVERY,
    RewardType.QUALITY_BONUS: SubPool.QUALITY_BONUS,
    RewardType.COMMUNITY_CONTRIBUTION: SubPool.RESERVE,
}

ALLOWED_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset({
        TransactionStatus.ALLOCATED,
        TransactionStatus.DEFERRED,
        TransactionStatus.FAILED,
    }),
    TransactionStatus.DEFERRED: frozenset({
        TransactionStatus.ALLOCATED,
        TransactionStatus.DEFERRED,
    }),
    TransactionStatus.ALLOCATED: frozenset({TransactionStatus.FAILED}),
    TransactionStatus.FAILED: frozenset(),
}


@dataclass
class RewardTransaction:
    """A reward owed to a recipient.

    Attributes:
        tx_id: Unique transaction identifier.
        recipient: Identity receiving the reward.
        amount: Positive reward amount.
        reward_type: Reason tag.
        source_ref: Content id or propagation event id the reward is for.
        status: Current state.
        created_at: When the transaction was created.
        updated_at: When the status last changed.
        period: Period whose budget paid for the transaction, if allocated.
        failure_reason: Why the ledger refused it, if failed.
        dispatched: Whether the ledger has accepted it.
        deferrals: How many periods it has waited for budget.
    """

    tx_id: str
    recipient: str
    amount: Decimal
    reward_type: RewardType
    source_ref: str
    status: TransactionStatus = TransactionStatus.PENDING
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    period: str | None = None
    failure_reason: str | None = None
    dispatched: bool = False
    deferrals: int = 0

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError(f"amount must be positive, got {self.amount}")

    @property
    def sub_pool(self) -> SubPool:
        return SUB_POOL_FOR[self.reward_type]

    @property
    def idempotency_key(self) -> tuple[str, RewardType, str]:
        return (self.recipient, self.reward_type, self.source_ref)

    def can_transition_to(self, status: TransactionStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self.status]

    def transition_to(
        self,
        status: TransactionStatus,
        *,
        reason: str | None = None,
        at: datetime | None = None,
    ) -> None:
        """Move to a new status.

        Raises:
            ValueError: The transition is not permitted from the current status.
        """
        if not self.can_transition_to(status):
            raise ValueError(
                f"Transaction {self.tx_id} cannot move from "
                f"{self.status.value} to {status.value}"
            )
        self.status = status
        self.updated_at = at or datetime.now(timezone.utc)
        if status == TransactionStatus.DEFERRED:
            self.deferrals += 1
        if status == TransactionStatus.FAILED:
            self.failure_reason = reason

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "tx_id": self.tx_id,
            "recipient": self.recipient,
            "amount": str(self.amount),
            "reward_type": self.reward_type.value,
            "source_ref": self.source_ref,
            "status": self.status.value,
            "sub_pool": self.sub_pool.value,
            "period": self.period,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "failure_reason": self.failure_reason,
            "dispatched": self.dispatched,
            "deferrals": self.deferrals,
        }


@dataclass(frozen=True)
class SubPoolStatus:
    """Balance of one sub-pool for the current period."""

    name: SubPool
    allocated: Decimal
    remaining: Decimal

    @property
    def spent(self) -> Decimal:
        return self.allocated - self.remaining

    @property
    def utilization(self) -> float:
        if self.allocated == 0:
            return 0.0
        return float(self.spent / self.allocated)


@dataclass(frozen=True)
class PoolStatus:
    """Snapshot of the whole reward pool."""

    period: str | None
    budget: Decimal
    sub_pools: dict[SubPool, SubPoolStatus]

    @property
    def remaining(self) -> Decimal:
        return sum((s.remaining for s in self.sub_pools.values()), Decimal("0"))

    @property
    def utilization(self) -> float:
        if self.budget == 0:
            return 0.0
        return float((self.budget - self.remaining) / self.budget)

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period,
            "budget": str(self.budget),
            "remaining": str(self.remaining),
            "utilization": round(self.utilization, 4),
            "sub_pools": {
                name.value: {
                    "allocated": str(s.allocated),
                    "remaining": str(s.remaining),
                    "utilization": round(s.utilization, 4),
                }
                for name, s in self.sub_pools.items()
            },
        }


# Activity multiplier: base 1.0 plus a bonus for each trait, capped
ACTIVITY_MULTIPLIER_CAP = 3.0
VELOCITY_WINDOW = timedelta(hours=24)

_PROPAGATION_TYPES = frozenset({RewardType.PROPAGATION, RewardType.LOOP_PARTICIPATION})


@dataclass
class UserRewardStats:
    """Per-recipient reward totals.

    Totals count allocated transactions only; deferred amounts are tracked
    separately as pending until a later period funds them.

    Attributes:
        recipient: Identity the rewards belong to.
        total: Sum of allocated amounts.
        by_type: Allocated amount per reward type.
        transaction_count: Number of allocated transactions.
        pending: Sum of deferred amounts still waiting for funding.
        reward_velocity: Allocated amount per hour over the last 24 hours.
        activity_multiplier: 1.0 plus quality, propagation and velocity
            bonuses, capped at 3.0.
        rank: Leaderboard position (1-based); 0 until ranked.
        last_reward_at: Time of the most recent allocation.
    """

    recipient: str
    total: Decimal = Decimal("0")
    by_type: dict[RewardType, Decimal] = field(default_factory=dict)
    transaction_count: int = 0
    pending: Decimal = Decimal("0")
    reward_velocity: float = 0.0
    activity_multiplier: float = 1.0
    rank: int = 0
    last_reward_at: datetime | None = None
    _allocations: dict[str, tuple[datetime, Decimal]] = field(
        default_factory=dict, repr=False
    )

    def add(self, tx: RewardTransaction, now: datetime | None = None) -> None:
        self.total += tx.amount
        self.by_type[tx.reward_type] = (
            self.by_type.get(tx.reward_type, Decimal("0")) + tx.amount
        )
        self.transaction_count += 1
        self._allocations[tx.tx_id] = (tx.updated_at, tx.amount)
        if self.last_reward_at is None or tx.updated_at > self.last_reward_at:
            self.last_reward_at = tx.updated_at
        self.refresh(now)

    def remove(self, tx: RewardTransaction, now: datetime | None = None) -> None:
        self.total -= tx.amount
        self.by_type[tx.reward_type] -= tx.amount
        self.transaction_count -= 1
        self._allocations.pop(tx.tx_id, None)
        self.refresh(now)

    def add_pending(self, tx: RewardTransaction) -> None:
        self.pending += tx.amount

    def remove_pending(self, tx: RewardTransaction) -> None:
        self.pending -= tx.amount

    def _share(self, types: frozenset[RewardType]) -> Decimal:
        return sum(
            (amount for kind, amount in self.by_type.items() if kind in types),
            Decimal("0"),
        )

    def refresh(self, now: datetime | None = None) -> None:
        """Recompute velocity and activity multiplier as of ``now``."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - VELOCITY_WINDOW
        recent = sum(
            (amount for at, amount in self._allocations.values() if at >= cutoff),
            Decimal("0"),
        )
        self.reward_velocity = float(recent) / 24.0

        multiplier = 1.0
        if self.total > 0:
            if self._share(frozenset({RewardType.QUALITY_BONUS})) > self.total * Decimal("0.2"):
                multiplier += 0.2
            if self._share(_PROPAGATION_TYPES) > self.total * Decimal("0.3"):
                multiplier += 0.3
        if self.reward_velocity > 0.5:
            multiplier += 0.1
        self.activity_multiplier = min(multiplier, ACTIVITY_MULTIPLIER_CAP)

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipient": self.recipient,
            "rank": self.rank,
            "total": str(self.total),
            "pending": str(self.pending),
            "by_type": {k.value: str(v) for k, v in self.by_type.items()},
            "transaction_count": self.transaction_count,
            "reward_velocity": round(self.reward_velocity, 8),
            "activity_multiplier": round(self.activity_multiplier, 4),
            "last_reward_at": (
                self.last_reward_at.isoformat() if self.last_reward_at else None
            ),
        }


@dataclass(frozen=True)
class RewardAnalytics:
    """Aggregates over transactions created since a cutoff."""

    transaction_count: int
    allocated_total: Decimal
    by_status: dict[str, int]
    by_type: dict[str, Decimal]
    unique_recipients: int
    deferred_queue_depth: int
    pool: PoolStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_count": self.transaction_count,
            "allocated_total": str(self.allocated_total),
            "by_status": dict(self.by_status),
            "by_type": {k: str(v) for k, v in self.by_type.items()},
            "unique_recipients": self.unique_recipients,
            "deferred_queue_depth": self.deferred_queue_depth,
            "pool": self.pool.to_dict(),
        }


@dataclass(frozen=True)
class Discovery:
    """A discoverer surfacing a scored content item.

    Attributes:
        content_id: Content item that was discovered.
        discoverer: Identity credited with the discovery.
        discovery_timing: Position in the item's lifetime (0.0 = first seen).
        discoverer_influence: Influence weight of the discoverer.
    """

    content_id: str
    discoverer: str
    discovery_timing: float = 0.0
    discoverer_influence: float = 0.0


def parse_discovery(payload: dict) -> Discovery:
    """Build a Discovery from a JSON-style dict.

    Raises:
        InputValidationError: Missing or malformed fields.
    """
    if not isinstance(payload, dict):
        raise InputValidationError(
            f"Discovery must be an object, got {type(payload).__name__}"
        )
    try:
        return Discovery(
            content_id=str(payload["content_id"]),
            discoverer=str(payload["discoverer"]),
            discovery_timing=float(payload.get("discovery_timing", 0.0)),
            discoverer_influence=float(payload.get("discoverer_influence", 0.0)),
        )
    except KeyError as exc:
        raise InputValidationError(
            f"Invalid discovery: missing {exc.args[0]!r}",
            content_id=payload.get("content_id"),
            discoverer=payload.get("discoverer"),
        ) from exc
    except (TypeError, ValueError) as exc:
        raise InputValidationError(
            f"Invalid discovery: {exc}",
            content_id=payload.get("content_id"),
            discoverer=payload.get("discoverer"),
        ) from exc
