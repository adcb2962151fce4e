"""
Step Sequencer

Drives one sequence from preparation to confirmation: request builder, then
wallet executor and receipt waiter for each step in order. Every state change
goes through the pure reducer; tracker hooks and subscriber callbacks are
best-effort and never change the sequence.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..chain_types import parse_chain_id
from ..errors import ErrorKind, RateLimited, ServiceUnavailable, TxFlowError, classify_error
from ..execution.models import ReceiptOutcome, ReceiptResult, Step
from ..execution.receipts import ReceiptWaiter
from ..execution.wallet import WalletExecutor
from ..requests.base import RequestBuilder
from ..tracking.adapter import NoopTrackingHandle, TrackerAdapter, TrackingHandle
from ..tracking.models import TrackingContext, TxHashStatus
from .models import (
    InvalidTransitionError,
    PrepareFailed,
    RecheckStarted,
    ReceiptResolved,
    RetryRequested,
    Sequence,
    SequenceEvent,
    Stage,
    StepDispatched,
    StepsPrepared,
    StepSubmitted,
    WalletFailed,
)
from .reducer import reduce


Subscriber = Callable[[Sequence], Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Sequencer:
    """
    Orchestrates one user action.

    Features:
    - Runs steps strictly in order; step N+1 is dispatched only from step N's
      confirmation
    - Auto-advances past steps flagged ``requires_follow_up``
    - Manual ``retry()`` of the current step from ``failed``/``timeout``
    - ``recheck()`` of a timed-out step's hash without re-signing
    - ``switch_network()`` after a wrong-network failure
    - ``dispose()`` discards every later result
    """

    def __init__(
        self,
        builder: RequestBuilder,
        action: str,
        params: Mapping[str, Any],
        executor: WalletExecutor,
        waiter: ReceiptWaiter,
        tracker: Optional[TrackerAdapter] = None,
        tracking_context: Optional[TrackingContext] = None,
        receipt_timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
        logger: Optional[logging.Logger] = None,
    ):
        self.builder = builder
        self.action = action
        self.params = dict(params)
        self.executor = executor
        self.waiter = waiter
        self.tracker = tracker
        self.tracking_context = tracking_context
        self.receipt_timeout_seconds = receipt_timeout_seconds
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock

        self._sequence = Sequence(domain=builder.domain, action=action)
        self._handle: TrackingHandle = NoopTrackingHandle()
        self._subscribers: List[Subscriber] = []
        self._started = False
        self._disposed = False
        self._confirmed_reported = False

    @property
    def sequence(self) -> Sequence:
        return self._sequence

    @property
    def tracking(self) -> TrackingHandle:
        return self._handle

    @property
    def disposed(self) -> bool:
        return self._disposed

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for every new sequence value; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def dispose(self) -> None:
        """Stop mutating state; results of in-flight calls are discarded."""
        if not self._disposed:
            self._disposed = True
            self._subscribers.clear()
            self.logger.info(f"Sequence {self._sequence.id}: disposed")

    # State

    def _apply(self, event: SequenceEvent) -> bool:
        """Reduce ``event`` into the sequence. Returns False once disposed."""
        if self._disposed:
            return False

        previous = self._sequence
        self._sequence = reduce(previous, event)
        self._log_changes(previous, self._sequence)
        self._notify()
        return True

    def _log_changes(self, previous: Sequence, current: Sequence) -> None:
        if len(previous.records) != len(current.records):
            self.logger.info(
                f"Sequence {current.id}: prepared {len(current.records)} step(s) "
                f"{[record.step.key for record in current.records]}"
            )
            return
        if not current.records and current.error != previous.error:
            self.logger.info(
                f"Sequence {current.id}: preparation "
                f"{'failed (' + current.error.value + ')' if current.error else 'retrying'}"
            )
            return
        for index, (before, after) in enumerate(zip(previous.records, current.records)):
            if before.stage != after.stage:
                self.logger.info(
                    f"Sequence {current.id}: step {index} {before.stage.value} -> {after.stage.value}"
                    f"{f' ({after.error.value})' if after.error else ''}"
                )

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self._sequence)
            except Exception as e:
                self.logger.warning(f"Sequence subscriber error: {e}")

    async def _track(self, hook: str, *args: Any) -> None:
        """Call a tracker hook; failures are logged and ignored."""
        if self._disposed:
            return
        try:
            await getattr(self._handle, hook)(*args)
        except Exception as e:
            self.logger.warning(f"Tracker {hook} failed for sequence {self._sequence.id}: {e}")

    # Lifecycle

    async def start(self) -> Sequence:
        """Open tracking, prepare the steps and run them."""
        if self._started:
            raise InvalidTransitionError(
                from_stage=self._sequence.overall_stage,
                to_stage=Stage.AWAITING_WALLET,
                message="Sequence already started",
            )
        self._started = True

        await self._start_tracking()
        await self._prepare_and_run()
        return self._sequence

    async def _start_tracking(self) -> None:
        if self.tracker is None:
            return
        context = self.tracking_context or self._default_tracking_context()
        try:
            self._handle = await self.tracker.start_tracking(context)
        except Exception as e:
            self.logger.warning(f"Tracker start failed for sequence {self._sequence.id}: {e}")
            self._handle = NoopTrackingHandle()

    def _default_tracking_context(self) -> TrackingContext:
        amount = self.params.get("amount")
        return TrackingContext(
            domain=self.builder.domain,
            action=self.action,
            chain_id=parse_chain_id(self.params.get("chain_id")) or self.builder.default_chain_id,
            wallet_address=self.params.get("wallet_address") or getattr(self.executor, "from_address", None),
            amount=str(amount) if amount is not None else None,
            token=self.params.get("token"),
            user_id=self.params.get("user_id"),
        )

    async def _prepare_and_run(self) -> None:
        try:
            steps = await self.builder.prepare(self.action, self.params)
        except Exception as e:
            if self._disposed:
                return
            await self._prepare_failed(e)
            return

        if not steps:
            await self._prepare_failed(ServiceUnavailable("Preparation returned no steps"))
            return

        if not self._apply(StepsPrepared(tuple(steps))):
            return
        await self._run_current()

    async def _prepare_failed(self, error: Exception) -> None:
        context = classify_error(error)
        retry_not_before: Optional[datetime] = None
        if isinstance(error, RateLimited):
            retry_not_before = self._clock() + timedelta(seconds=error.retry_after_seconds)

        message = getattr(error, "message", None) or str(error)
        self.logger.warning(f"Sequence {self._sequence.id}: prepare failed ({context.kind.value}): {message}")
        if self._apply(PrepareFailed(error=context.kind, message=message, retry_not_before=retry_not_before)):
            await self._track("mark_failed", context.kind.value, message)

    async def _run_current(self) -> None:
        """Execute the current step, continuing through follow-up steps."""
        while not self._disposed:
            record = self._sequence.current
            if record is None or record.stage != Stage.QUEUED:
                return
            if not await self._execute_step(self._sequence.current_index):
                return

    async def _execute_step(self, index: int) -> bool:
        """Run one step. Returns True when the next step should start right away."""
        step = self._sequence.records[index].step
        if not self._apply(StepDispatched(index)):
            return False

        try:
            tx_hash = await self.executor.execute(step)
        except Exception as e:
            if self._disposed:
                return False
            kind = e.kind if isinstance(e, TxFlowError) else classify_error(e).kind
            message = getattr(e, "message", None) or str(e)
            self._apply(WalletFailed(index=index, error=kind, message=message))
            await self._track("mark_failed", kind.value, message)
            return False

        if not self._apply(StepSubmitted(index=index, tx_hash=tx_hash)):
            return False
        await self._track("add_tx_hash", tx_hash, step.chain_id, self._tx_type(step), TxHashStatus.PENDING)
        await self._track("mark_submitted")

        result = await self._wait(step, tx_hash)
        return await self._resolve(index, result)

    async def _wait(self, step: Step, tx_hash: str) -> ReceiptResult:
        try:
            return await self.waiter.wait_for_receipt(
                tx_hash,
                step.chain_id,
                timeout_seconds=self.receipt_timeout_seconds,
                should_continue=lambda: not self._disposed,
            )
        except Exception as e:
            # Outcome unknown once a hash exists; report it as a timeout
            self.logger.warning(f"Receipt wait failed for {tx_hash}: {e}")
            return ReceiptResult(
                outcome=ReceiptOutcome.TIMEOUT,
                tx_hash=tx_hash,
                chain_id=step.chain_id,
                error=str(e),
            )

    async def _resolve(self, index: int, result: ReceiptResult, recheck: bool = False) -> bool:
        if result.outcome == ReceiptOutcome.CANCELLED or self._disposed:
            return False

        step = self._sequence.records[index].step
        if not self._apply(
            ReceiptResolved(index=index, outcome=result.outcome, message=result.error, recheck=recheck)
        ):
            return False

        if result.outcome == ReceiptOutcome.CONFIRMED:
            await self._track("add_tx_hash", result.tx_hash, step.chain_id, self._tx_type(step), TxHashStatus.SUCCESS)
            if self._sequence.overall_stage == Stage.CONFIRMED:
                if not self._confirmed_reported:
                    self._confirmed_reported = True
                    await self._track("mark_confirmed")
                return False
            return step.requires_follow_up

        if result.outcome == ReceiptOutcome.FAILED:
            await self._track("add_tx_hash", result.tx_hash, step.chain_id, self._tx_type(step), TxHashStatus.FAILED)
            await self._track(
                "mark_failed",
                ErrorKind.TRANSACTION_REVERTED.value,
                result.error or "Transaction reverted",
            )
            return False

        await self._track("mark_pending")
        return False

    @staticmethod
    def _tx_type(step: Step) -> str:
        return step.key or step.role.value

    # User actions

    async def retry(self) -> bool:
        """
        Re-run the current step (or the preparation, if it failed).

        Returns False when retry is not allowed in the current state.
        """
        if self._disposed or not self._started:
            return False
        try:
            self._apply(RetryRequested(requested_at=self._clock()))
        except InvalidTransitionError as e:
            self.logger.info(f"Sequence {self._sequence.id}: retry rejected: {e.message}")
            return False

        if not self._sequence.records:
            await self._prepare_and_run()
        else:
            await self._run_current()
        return True

    async def advance(self) -> bool:
        """Start the current step when it is queued behind a confirmed step."""
        if self._disposed:
            return False
        record = self._sequence.current
        if record is None or record.stage != Stage.QUEUED or self._sequence.current_index == 0:
            return False
        await self._run_current()
        return True

    async def recheck(self) -> bool:
        """
        Poll the receipt of a timed-out step's hash again, without re-signing.

        The step counts as in flight while polling, so ``retry()`` and a
        second ``recheck()`` are rejected until it resolves. Returns False
        when the current step is not a timed-out submission.
        """
        if self._disposed:
            return False
        record = self._sequence.current
        if record is None or record.stage != Stage.TIMEOUT or not record.tx_hash:
            return False

        index = self._sequence.current_index
        try:
            self._apply(RecheckStarted(index))
        except InvalidTransitionError as e:
            self.logger.info(f"Sequence {self._sequence.id}: recheck rejected: {e.message}")
            return False
        self.logger.info(f"Sequence {self._sequence.id}: rechecking step {index} ({record.tx_hash})")

        result = await self._wait(record.step, record.tx_hash)
        if result.outcome == ReceiptOutcome.CANCELLED:
            result = replace(result, outcome=ReceiptOutcome.TIMEOUT)
        if await self._resolve(index, result, recheck=True):
            await self._run_current()
        return True

    async def switch_network(self) -> bool:
        """
        Ask the wallet to switch to the current step's chain.

        Only valid after a wrong-network failure. The step stays ``failed``;
        the user retries once the wallet has switched.
        """
        if self._disposed:
            return False
        record = self._sequence.current
        if record is None or record.stage != Stage.FAILED or record.error != ErrorKind.WRONG_NETWORK:
            return False
        await self.executor.switch_network(record.step.chain_id)
        return True

    async def get_tracked_transaction(self) -> Optional[Dict[str, Any]]:
        """Durable tracking record, when tracking is available."""
        try:
            return await self._handle.get_transaction()
        except Exception as e:
            self.logger.warning(f"Tracker get_transaction failed for sequence {self._sequence.id}: {e}")
            return None
