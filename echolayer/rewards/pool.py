"""Per-period reward pool with independent sub-pool counters.

The daily budget is split by share into five sub-pools. Non-reserve shares
are rounded down to 8 decimal places and the reserve takes whatever is left,
so the sub-pools always sum to the budget exactly.

Each sub-pool has its own asyncio.Lock; a debit is a single check-and-
decrement under that lock, so concurrent allocations can never jointly
overdraw a sub-pool. Balances only ever decrease within a period.
"""

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import date
from decimal import ROUND_DOWN, Decimal
from typing import AsyncIterator

from echolayer.errors import InputValidationError, PoolExhaustedError

from .config import RewardConfig
from .schemas import PoolStatus, SubPool, SubPoolStatus

logger = logging.getLogger(__name__)

AMOUNT_QUANTUM = Decimal("0.00000001")
_ZERO = Decimal("0")


def quantize_amount(value: Decimal | float | int | str) -> Decimal:
    """Round an amount down to the 8-place ledger precision."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_DOWN)


class RewardPool:
    """Sub-pool balances for the current period.

    Usage:
        pool = RewardPool(RewardConfig())
        async with pool.exclusive():
            pool.reset("2024-06-01")
        await pool.debit(SubPool.CREATION, Decimal("150"))
    """

    def __init__(self, config: RewardConfig | None = None) -> None:
        self._config = config or RewardConfig()
        self._period: str | None = None
        self._budget = _ZERO
        self._allocated: dict[SubPool, Decimal] = {p: _ZERO for p in SubPool}
        self._remaining: dict[SubPool, Decimal] = {p: _ZERO for p in SubPool}
        self._locks: dict[SubPool, asyncio.Lock] = {p: asyncio.Lock() for p in SubPool}

    @property
    def period(self) -> str | None:
        return self._period

    @property
    def budget(self) -> Decimal:
        return self._budget

    def split(self, budget: Decimal) -> dict[SubPool, Decimal]:
        """Divide a budget into sub-pool allocations summing to it exactly."""
        shares = {
            SubPool.CREATION: self._config.creation_share,
            SubPool.PROPAGATION: self._config.propagation_share,
            SubPool.DISCOVERY: self._config.discovery_share,
            SubPool.QUALITY_BONUS: self._config.quality_bonus_share,
        }
        parts = {
            name: quantize_amount(budget * Decimal(str(share)))
            for name, share in shares.items()
        }
        parts[SubPool.RESERVE] = budget - sum(parts.values(), _ZERO)
        return parts

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator["RewardPool"]:
        """Hold every sub-pool lock, in a fixed order."""
        async with AsyncExitStack() as stack:
            for name in SubPool:
                await stack.enter_async_context(self._locks[name])
            yield self

    def reset(self, period: str, budget: Decimal | None = None) -> None:
        """Start a new period with fresh balances.

        Periods are ISO dates and only move forward; a period is funded once.
        Caller must hold exclusive().

        Raises:
            InputValidationError: The period is malformed or not later than
                the current one, or the budget is not positive.
        """
        try:
            start = date.fromisoformat(period)
        except (TypeError, ValueError) as exc:
            raise InputValidationError(
                f"Period must be an ISO date, got {period!r}", period=period
            ) from exc
        if self._period is not None and start <= date.fromisoformat(self._period):
            raise InputValidationError(
                f"Period {period} is not later than current period {self._period}",
                period=period,
                current_period=self._period,
            )

        budget = quantize_amount(
            budget if budget is not None else self._config.daily_budget
        )
        if budget <= 0:
            raise InputValidationError(
                f"Budget must be positive, got {budget}",
                period=period,
                budget=str(budget),
            )

        self._period = period
        self._budget = budget
        self._allocated = self.split(budget)
        self._remaining = dict(self._allocated)
        logger.info(
            "Reward pool reset for %s: budget=%s (%s)",
            period,
            budget,
            ", ".join(f"{k.value}={v}" for k, v in self._allocated.items()),
        )

    def take(self, sub_pool: SubPool, amount: Decimal) -> Decimal:
        """Check-and-decrement a sub-pool. Caller must hold its lock.

        Returns:
            The sub-pool's remaining balance.

        Raises:
            PoolExhaustedError: The balance cannot cover the full amount.
        """
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")
        remaining = self._remaining[sub_pool]
        if amount > remaining:
            raise PoolExhaustedError(
                f"Sub-pool {sub_pool.value} cannot cover {amount}",
                sub_pool=sub_pool.value,
                requested=str(amount),
                remaining=str(remaining),
                period=self._period,
            )
        self._remaining[sub_pool] = remaining - amount
        return self._remaining[sub_pool]

    async def debit(self, sub_pool: SubPool, amount: Decimal) -> Decimal:
        """Atomically take an amount from a sub-pool.

        Raises:
            PoolExhaustedError: The balance cannot cover the full amount.
        """
        async with self._locks[sub_pool]:
            return self.take(sub_pool, amount)

    def remaining(self, sub_pool: SubPool) -> Decimal:
        return self._remaining[sub_pool]

    def status(self) -> PoolStatus:
        return PoolStatus(
            period=self._period,
            budget=self._budget,
            sub_pools={
                name: SubPoolStatus(
                    name=name,
                    allocated=self._allocated[name],
                    remaining=self._remaining[name],
                )
                for name in SubPool
            },
        )
