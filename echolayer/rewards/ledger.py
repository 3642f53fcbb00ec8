"""Hand-off of allocated rewards to the payout ledger.

The ledger is an external collaborator and may block. Every submission runs
under a bounded timeout; a timeout means "not yet resolved" and leaves the
transaction allocated for the next dispatch pass. A LedgerRejection is
terminal: the transaction is marked failed and never retried.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import structlog

from echolayer.config.settings import get_settings
from echolayer.errors import LedgerRejection

from .allocator import RewardAllocator
from .schemas import RewardTransaction

logger = structlog.get_logger(__name__)


@runtime_checkable
class LedgerClient(Protocol):
    """Payout ledger collaborator."""

    async def submit(self, transaction: RewardTransaction) -> None:
        """Persist a transaction. Raises LedgerRejection to refuse it."""
        ...


@dataclass
class DispatchReport:
    """Outcome of one dispatch pass."""

    submitted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "submitted": len(self.submitted),
            "failed": len(self.failed),
            "unresolved": len(self.unresolved),
        }


class LedgerDispatcher:
    """Submit allocated, undispatched transactions to the ledger."""

    def __init__(
        self,
        allocator: RewardAllocator,
        client: LedgerClient,
        timeout_seconds: float | None = None,
    ) -> None:
        self._allocator = allocator
        self._client = client
        self._timeout = (
            timeout_seconds
            if timeout_seconds is not None
            else get_settings().collaborator_timeout_seconds
        )

    async def dispatch(self, tx: RewardTransaction) -> str:
        """Submit one transaction.

        Returns:
            "submitted", "failed" or "unresolved".
        """
        try:
            async with asyncio.timeout(self._timeout):
                await self._client.submit(tx)
        except TimeoutError:
            logger.warning(
                "Ledger submission timed out",
                tx_id=tx.tx_id,
                timeout_seconds=self._timeout,
            )
            return "unresolved"
        except LedgerRejection as exc:
            self._allocator.mark_failed(tx.tx_id, str(exc))
            return "failed"

        self._allocator.mark_dispatched(tx.tx_id)
        return "submitted"

    async def dispatch_pending(self) -> DispatchReport:
        """Submit every allocated transaction the ledger has not accepted yet."""
        report = DispatchReport()
        for tx in self._allocator.undispatched():
            outcome = await self.dispatch(tx)
            getattr(report, outcome).append(tx.tx_id)

        if report.submitted or report.failed or report.unresolved:
            logger.info("Ledger dispatch complete", **report.to_dict())
        return report
