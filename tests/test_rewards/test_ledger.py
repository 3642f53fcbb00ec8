"""Tests for ledger dispatch."""

import asyncio
from decimal import Decimal

from echolayer.errors import LedgerRejection
from echolayer.rewards.allocator import RewardAllocator
from echolayer.rewards.ledger import LedgerClient, LedgerDispatcher
from echolayer.rewards.schemas import RewardTransaction, RewardType, TransactionStatus


class FakeLedger:
    """In-memory ledger that can reject or stall specific recipients."""

    def __init__(self, reject: set[str] | None = None, stall: set[str] | None = None) -> None:
        self.accepted: list[str] = []
        self._reject = reject or set()
        self._stall = stall or set()

    async def submit(self, transaction: RewardTransaction) -> None:
        if transaction.recipient in self._stall:
            await asyncio.sleep(10)
        if transaction.recipient in self._reject:
            raise LedgerRejection("recipient blocked", tx_id=transaction.tx_id)
        self.accepted.append(transaction.tx_id)


async def _allocate(allocator: RewardAllocator, recipient: str, amount: str = "10"):
    return await allocator.allocate(recipient, RewardType.CONTENT_CREATION, "c1", Decimal(amount))


class TestLedgerDispatcher:
    def test_fake_satisfies_protocol(self) -> None:
        assert isinstance(FakeLedger(), LedgerClient)

    async def test_accepted_transactions_marked_dispatched(self, allocator: RewardAllocator) -> None:
        tx = await _allocate(allocator, "creator_1")
        ledger = FakeLedger()
        dispatcher = LedgerDispatcher(allocator, ledger, timeout_seconds=1.0)

        report = await dispatcher.dispatch_pending()

        assert report.submitted == [tx.tx_id]
        assert ledger.accepted == [tx.tx_id]
        assert tx.dispatched
        assert allocator.undispatched() == []

        # A second pass has nothing to do
        again = await dispatcher.dispatch_pending()
        assert again.to_dict() == {"submitted": 0, "failed": 0, "unresolved": 0}

    async def test_rejection_is_terminal(self, allocator: RewardAllocator) -> None:
        tx = await _allocate(allocator, "blocked")
        dispatcher = LedgerDispatcher(allocator, FakeLedger(reject={"blocked"}), timeout_seconds=1.0)

        report = await dispatcher.dispatch_pending()

        assert report.failed == [tx.tx_id]
        assert tx.status == TransactionStatus.FAILED
        assert tx.failure_reason == "recipient blocked"
        assert allocator.undispatched() == []

    async def test_timeout_leaves_transaction_allocated(self, allocator: RewardAllocator) -> None:
        slow = await _allocate(allocator, "slow")
        fast = await _allocate(allocator, "fast")
        dispatcher = LedgerDispatcher(allocator, FakeLedger(stall={"slow"}), timeout_seconds=0.05)

        report = await dispatcher.dispatch_pending()

        assert report.unresolved == [slow.tx_id]
        assert report.submitted == [fast.tx_id]
        assert slow.status == TransactionStatus.ALLOCATED
        assert not slow.dispatched
        assert allocator.undispatched() == [slow]

    async def test_deferred_not_dispatched(self, allocator: RewardAllocator) -> None:
        await _allocate(allocator, "big", amount="400")
        deferred = await _allocate(allocator, "late", amount="1")
        ledger = FakeLedger()

        await LedgerDispatcher(allocator, ledger, timeout_seconds=1.0).dispatch_pending()

        assert deferred.status == TransactionStatus.DEFERRED
        assert deferred.tx_id not in ledger.accepted

    async def test_timeout_defaults_to_settings(self, allocator: RewardAllocator, monkeypatch) -> None:
        from echolayer.config.settings import get_settings

        monkeypatch.setenv("COLLABORATOR_TIMEOUT_SECONDS", "2.5")
        get_settings.cache_clear()
        try:
            dispatcher = LedgerDispatcher(allocator, FakeLedger())
            assert dispatcher._timeout == 2.5
        finally:
            get_settings.cache_clear()
