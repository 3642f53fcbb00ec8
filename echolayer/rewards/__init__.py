"""Reward allocation from a bounded per-period budget.

Components:
- RewardAllocator: Idempotent reward flows, deferral queue, period rollover
- RewardPool: Five sub-pools with lock-protected check-and-decrement
- RewardCalculator: Creation, propagation, discovery and quality formulas
- LedgerDispatcher: Timeout-bounded hand-off to the payout ledger
- RewardConfig: Pydantic settings with REWARD_ prefix

Usage:
    from echolayer.rewards import RewardAllocator

    allocator = RewardAllocator(score_history, graph)
    await allocator.start_period("2024-06-01")
    tx = await allocator.award_creation("c1")
"""

from echolayer.rewards.allocator import RewardAllocator
from echolayer.rewards.calculator import RewardCalculator
from echolayer.rewards.config import RewardConfig
from echolayer.rewards.ledger import DispatchReport, LedgerClient, LedgerDispatcher
from echolayer.rewards.pool import RewardPool, quantize_amount
from echolayer.rewards.schemas import (
    SUB_POOL_FOR,
    Discovery,
    PoolStatus,
    RewardAnalytics,
    RewardTransaction,
    RewardType,
    SubPool,
    SubPoolStatus,
    TransactionStatus,
    UserRewardStats,
    parse_discovery,
)

__all__ = [
    "Discovery",
    "DispatchReport",
    "LedgerClient",
    "LedgerDispatcher",
    "PoolStatus",
    "RewardAllocator",
    "RewardAnalytics",
    "RewardCalculator",
    "RewardConfig",
    "RewardPool",
    "RewardTransaction",
    "RewardType",
    "SUB_POOL_FOR",
    "SubPool",
    "SubPoolStatus",
    "TransactionStatus",
    "UserRewardStats",
    "parse_discovery",
    "quantize_amount",
]
