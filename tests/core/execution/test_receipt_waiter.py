"""
Tests for receipt polling.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from txflow.core.execution import ReceiptOutcome, ReceiptPoll, ReceiptResult, ReceiptWaiter, receipt_succeeded
from txflow.providers.rpc import RpcError


TX_HASH = "0x" + "cd" * 32


class FakeTime:
    """Clock advanced only by the waiter's own sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_time():
    return FakeTime()


def make_waiter(receipts, fake_time, timeout=600.0, interval=2.0):
    rpc = MagicMock()
    rpc.get_transaction_receipt = AsyncMock(side_effect=receipts)
    waiter = ReceiptWaiter(
        rpc=rpc,
        poll_interval_seconds=interval,
        timeout_seconds=timeout,
        sleep=fake_time.sleep,
        clock=fake_time.clock,
    )
    return waiter, rpc


async def collect(waiter, **kwargs):
    return [item async for item in waiter.poll(TX_HASH, 43114, **kwargs)]


# =============================================================================
# Receipt Status
# =============================================================================


class TestReceiptStatus:
    """Test receipt status interpretation"""

    @pytest.mark.parametrize(
        "receipt,expected",
        [
            ({"status": "0x1"}, True),
            ({"status": 1}, True),
            ({"status": "0x0"}, False),
            ({"status": 0}, False),
            ({"status": None}, True),
            ({}, True),
        ],
    )
    def test_status(self, receipt, expected):
        """0x1 is success, a missing status is success, anything else reverted"""
        assert receipt_succeeded(receipt) is expected


# =============================================================================
# Polling
# =============================================================================


class TestPolling:
    """Test the polling loop"""

    @pytest.mark.asyncio
    async def test_confirmed_after_polls(self, fake_time):
        """Empty lookups yield polls, then the confirmed result"""
        receipt = {"status": "0x1", "blockNumber": "0x10", "blockHash": "0xbeef", "gasUsed": "0x5208"}
        waiter, rpc = make_waiter([None, None, receipt], fake_time)

        items = await collect(waiter)

        assert [type(item) for item in items] == [ReceiptPoll, ReceiptPoll, ReceiptResult]
        assert [item.attempt for item in items[:2]] == [1, 2]
        result = items[-1]
        assert result.outcome == ReceiptOutcome.CONFIRMED
        assert result.block_number == 16
        assert result.gas_used == 21000
        assert result.is_success
        assert fake_time.sleeps == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_reverted(self, fake_time):
        """A receipt with status 0 is a failed outcome"""
        waiter, _ = make_waiter([{"status": "0x0", "blockNumber": "0x2"}], fake_time)

        result = await waiter.wait_for_receipt(TX_HASH, 43114)

        assert result.outcome == ReceiptOutcome.FAILED
        assert result.error == "Transaction reverted"

    @pytest.mark.asyncio
    async def test_rpc_errors_are_transient(self, fake_time):
        """An RPC error is reported on the poll and polling continues"""
        waiter, rpc = make_waiter([RpcError("boom"), {"status": "0x1"}], fake_time)

        items = await collect(waiter)

        assert items[0].error == "boom"
        assert items[-1].outcome == ReceiptOutcome.CONFIRMED
        assert rpc.get_transaction_receipt.await_count == 2

    @pytest.mark.asyncio
    async def test_timeout_is_not_failure(self, fake_time):
        """No receipt before the deadline is a timeout, with a final lookup at the deadline"""
        waiter, rpc = make_waiter([None] * 10, fake_time, timeout=5.0, interval=2.0)

        result = await waiter.wait_for_receipt(TX_HASH, 43114)

        assert result.outcome == ReceiptOutcome.TIMEOUT
        assert "5s" in result.error
        assert rpc.get_transaction_receipt.await_count == 4
        assert fake_time.sleeps == [2.0, 2.0, 1.0]

    @pytest.mark.asyncio
    async def test_per_call_timeout(self, fake_time):
        """A per-call timeout overrides the waiter default"""
        waiter, rpc = make_waiter([None] * 10, fake_time, timeout=600.0)

        result = await waiter.wait_for_receipt(TX_HASH, 43114, timeout_seconds=0)

        assert result.outcome == ReceiptOutcome.TIMEOUT
        assert rpc.get_transaction_receipt.await_count == 1

    @pytest.mark.asyncio
    async def test_invalid_hash(self, fake_time):
        """A malformed hash resolves immediately without a lookup"""
        waiter, rpc = make_waiter([], fake_time)

        result = await waiter.wait_for_receipt("0x1234", 43114)

        assert result.outcome == ReceiptOutcome.TIMEOUT
        assert result.error == "Invalid transaction hash"
        rpc.get_transaction_receipt.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancelled(self, fake_time):
        """should_continue returning False stops polling"""
        waiter, rpc = make_waiter([None] * 10, fake_time)
        calls = []

        def should_continue():
            calls.append(1)
            return len(calls) < 3

        result = await waiter.wait_for_receipt(TX_HASH, 43114, should_continue=should_continue)

        assert result.outcome == ReceiptOutcome.CANCELLED
        assert rpc.get_transaction_receipt.await_count == 2

    @pytest.mark.asyncio
    async def test_poll_without_outcome_is_an_error(self, fake_time, monkeypatch):
        """A poll that stops before a terminal result raises instead of returning None"""
        waiter, _ = make_waiter([], fake_time)

        async def poll(tx_hash, chain_id, timeout_seconds=None, should_continue=None):
            yield ReceiptPoll(tx_hash=tx_hash, chain_id=chain_id, attempt=1, elapsed_seconds=0.0)

        monkeypatch.setattr(waiter, "poll", poll)

        with pytest.raises(RuntimeError, match="without an outcome"):
            await waiter.wait_for_receipt(TX_HASH, 43114)
