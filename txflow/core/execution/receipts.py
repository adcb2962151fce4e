"""
Receipt waiter.

Polls the chain for a transaction receipt on a fixed interval until the
receipt shows success or revert, or the deadline passes. A deadline without a
receipt is reported as ``timeout``, never as ``failed``: the transaction may
still be mined later.
"""

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Union

from ...config import settings
from ...providers.rpc import RpcProvider, get_rpc_provider
from .models import ReceiptOutcome, ReceiptPoll, ReceiptResult
from .tx_builder import is_tx_hash


logger = logging.getLogger(__name__)

ShouldContinue = Callable[[], bool]


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value), 16) if str(value).lower().startswith("0x") else int(str(value))
    except ValueError:
        return None


def receipt_succeeded(receipt: Dict[str, Any]) -> bool:
    """
    Interpret the receipt ``status`` field.

    ``"0x1"`` or ``1`` is success; a receipt without a status (pre-Byzantium
    style) is treated as success; anything else is a revert.
    """
    if "status" not in receipt or receipt.get("status") is None:
        return True
    return _to_int(receipt.get("status")) == 1


class ReceiptWaiter:
    """
    Waits for transaction finality with a bounded deadline.

    Transient RPC errors are logged and treated as "no receipt yet".
    """

    def __init__(
        self,
        rpc: Optional[RpcProvider] = None,
        poll_interval_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rpc = rpc or get_rpc_provider()
        self.poll_interval_seconds = poll_interval_seconds or settings.receipt_poll_interval_seconds
        self.timeout_seconds = timeout_seconds or settings.receipt_timeout_seconds
        self._sleep = sleep
        self._clock = clock

    async def poll(
        self,
        tx_hash: str,
        chain_id: int,
        timeout_seconds: Optional[float] = None,
        should_continue: Optional[ShouldContinue] = None,
    ) -> AsyncIterator[Union[ReceiptPoll, ReceiptResult]]:
        """
        Yield a ``ReceiptPoll`` for every lookup without a receipt, then one
        terminal ``ReceiptResult``.
        """
        if not is_tx_hash(tx_hash):
            yield ReceiptResult(
                outcome=ReceiptOutcome.TIMEOUT,
                tx_hash=tx_hash,
                chain_id=chain_id,
                error="Invalid transaction hash",
            )
            return

        timeout = timeout_seconds if timeout_seconds is not None else self.timeout_seconds
        start = self._clock()
        deadline = start + timeout
        attempt = 0

        while True:
            if should_continue is not None and not should_continue():
                yield ReceiptResult(outcome=ReceiptOutcome.CANCELLED, tx_hash=tx_hash, chain_id=chain_id)
                return

            attempt += 1
            error: Optional[str] = None
            receipt: Optional[Dict[str, Any]] = None
            try:
                receipt = await self.rpc.get_transaction_receipt(chain_id, tx_hash)
            except Exception as e:
                error = str(e)
                logger.warning(f"Error checking receipt for {tx_hash}: {e}")

            if receipt:
                yield self._result_from_receipt(receipt, tx_hash, chain_id)
                return

            now = self._clock()
            if now >= deadline:
                logger.info(f"Receipt timeout for {tx_hash} after {timeout:g}s")
                yield ReceiptResult(
                    outcome=ReceiptOutcome.TIMEOUT,
                    tx_hash=tx_hash,
                    chain_id=chain_id,
                    error=f"Confirmation timeout after {timeout:g}s",
                )
                return

            yield ReceiptPoll(
                tx_hash=tx_hash,
                chain_id=chain_id,
                attempt=attempt,
                elapsed_seconds=now - start,
                error=error,
            )
            await self._sleep(min(self.poll_interval_seconds, deadline - now))

    async def wait_for_receipt(
        self,
        tx_hash: str,
        chain_id: int,
        timeout_seconds: Optional[float] = None,
        should_continue: Optional[ShouldContinue] = None,
    ) -> ReceiptResult:
        """Poll until a terminal outcome and return it."""
        result: Optional[ReceiptResult] = None
        async for item in self.poll(tx_hash, chain_id, timeout_seconds, should_continue):
            if isinstance(item, ReceiptResult):
                result = item
        if result is None:
            raise RuntimeError(f"Receipt polling for {tx_hash} ended without an outcome")
        return result

    def _result_from_receipt(
        self,
        receipt: Dict[str, Any],
        tx_hash: str,
        chain_id: int,
    ) -> ReceiptResult:
        succeeded = receipt_succeeded(receipt)
        result = ReceiptResult(
            outcome=ReceiptOutcome.CONFIRMED if succeeded else ReceiptOutcome.FAILED,
            tx_hash=tx_hash,
            chain_id=chain_id,
            block_number=_to_int(receipt.get("blockNumber")),
            block_hash=receipt.get("blockHash"),
            gas_used=_to_int(receipt.get("gasUsed")),
            error=None if succeeded else "Transaction reverted",
        )
        logger.info(f"Receipt for {tx_hash}: {result.outcome.value} (block {result.block_number})")
        return result
