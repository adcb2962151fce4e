"""
Sequence reducer.

``reduce(sequence, event)`` is a pure function returning the next sequence
value. Illegal events raise ``InvalidTransitionError``; the input value is
never modified.
"""

from dataclasses import replace
from typing import Dict, Set

from ..errors import ErrorKind, is_retryable
from ..execution.models import ReceiptOutcome
from .models import (
    RETRYABLE_STAGES,
    InvalidTransitionError,
    PrepareFailed,
    RecheckStarted,
    ReceiptResolved,
    RetryRequested,
    Sequence,
    SequenceEvent,
    Stage,
    StepDispatched,
    StepRecord,
    StepsPrepared,
    StepSubmitted,
    WalletFailed,
)


# Valid per-step stage transitions
TRANSITIONS: Dict[Stage, Set[Stage]] = {
    Stage.QUEUED: {
        Stage.AWAITING_WALLET,
    },
    Stage.AWAITING_WALLET: {
        Stage.PENDING,
        Stage.FAILED,       # Wrong network, incompatible wallet, rejection
    },
    Stage.PENDING: {
        Stage.CONFIRMED,
        Stage.FAILED,       # Reverted
        Stage.TIMEOUT,
    },
    Stage.TIMEOUT: {
        Stage.QUEUED,       # Retry
        Stage.CONFIRMED,    # Recheck found a receipt
        Stage.FAILED,       # Recheck found a revert
        Stage.TIMEOUT,      # Recheck still without a receipt
    },
    Stage.FAILED: {
        Stage.QUEUED,       # Retry
    },
    Stage.CONFIRMED: set(),
}

_OUTCOME_STAGES = {
    ReceiptOutcome.CONFIRMED: Stage.CONFIRMED,
    ReceiptOutcome.FAILED: Stage.FAILED,
    ReceiptOutcome.TIMEOUT: Stage.TIMEOUT,
}


def can_transition(from_stage: Stage, to_stage: Stage) -> bool:
    return to_stage in TRANSITIONS.get(from_stage, set())


def _record_at(sequence: Sequence, index: int, to_stage: Stage) -> StepRecord:
    if not sequence.records:
        raise InvalidTransitionError(
            from_stage=sequence.overall_stage,
            to_stage=to_stage,
            message="Sequence has no steps",
        )
    if index != sequence.current_index:
        raise InvalidTransitionError(
            from_stage=sequence.records[index].stage if 0 <= index < len(sequence.records) else sequence.overall_stage,
            to_stage=to_stage,
            message=f"Step {index} is not the current step ({sequence.current_index})",
        )
    record = sequence.records[index]
    if not can_transition(record.stage, to_stage):
        raise InvalidTransitionError(from_stage=record.stage, to_stage=to_stage)
    return record


def _with_record(sequence: Sequence, index: int, record: StepRecord, **changes) -> Sequence:
    records = sequence.records[:index] + (record,) + sequence.records[index + 1:]
    return replace(sequence, records=records, **changes)


def reduce(sequence: Sequence, event: SequenceEvent) -> Sequence:
    """Apply ``event`` to ``sequence`` and return the new sequence."""

    if isinstance(event, StepsPrepared):
        if sequence.records or sequence.error:
            raise InvalidTransitionError(
                from_stage=sequence.overall_stage,
                to_stage=Stage.QUEUED,
                message="Sequence is already prepared",
            )
        if not event.steps:
            raise InvalidTransitionError(
                from_stage=sequence.overall_stage,
                to_stage=Stage.QUEUED,
                message="Prepared sequence has no steps",
            )
        return replace(
            sequence,
            records=tuple(StepRecord(step=step) for step in event.steps),
            current_index=0,
            error=None,
            error_message=None,
            retry_not_before=None,
        )

    if isinstance(event, PrepareFailed):
        if sequence.records:
            raise InvalidTransitionError(
                from_stage=sequence.overall_stage,
                to_stage=Stage.FAILED,
                message="Preparation already produced steps",
            )
        return replace(
            sequence,
            error=event.error,
            error_message=event.message,
            retry_not_before=event.retry_not_before,
        )

    if isinstance(event, StepDispatched):
        record = _record_at(sequence, event.index, Stage.AWAITING_WALLET)
        if sequence.active_count:
            raise InvalidTransitionError(
                from_stage=record.stage,
                to_stage=Stage.AWAITING_WALLET,
                message="Another step is already in flight",
            )
        if any(r.stage != Stage.CONFIRMED for r in sequence.records[:event.index]):
            raise InvalidTransitionError(
                from_stage=record.stage,
                to_stage=Stage.AWAITING_WALLET,
                message="Earlier steps are not confirmed",
            )
        return _with_record(
            sequence,
            event.index,
            replace(record, stage=Stage.AWAITING_WALLET, attempts=record.attempts + 1),
        )

    if isinstance(event, StepSubmitted):
        record = _record_at(sequence, event.index, Stage.PENDING)
        return _with_record(
            sequence,
            event.index,
            replace(record, stage=Stage.PENDING, tx_hash=event.tx_hash, error=None, error_message=None),
        )

    if isinstance(event, WalletFailed):
        record = _record_at(sequence, event.index, Stage.FAILED)
        return _with_record(
            sequence,
            event.index,
            replace(record, stage=Stage.FAILED, error=event.error, error_message=event.message),
        )

    if isinstance(event, ReceiptResolved):
        to_stage = _OUTCOME_STAGES.get(event.outcome)
        if to_stage is None:
            raise InvalidTransitionError(
                from_stage=sequence.overall_stage,
                to_stage=sequence.overall_stage,
                message=f"Receipt outcome {event.outcome.value} does not resolve a step",
            )
        record = _record_at(sequence, event.index, to_stage)
        if record.stage == Stage.TIMEOUT and not event.recheck:
            raise InvalidTransitionError(
                from_stage=record.stage,
                to_stage=to_stage,
                message="A timed-out step only resolves through a recheck",
            )
        if event.recheck and not record.rechecking:
            raise InvalidTransitionError(
                from_stage=record.stage,
                to_stage=to_stage,
                message="No recheck of this step is in progress",
            )

        if to_stage == Stage.CONFIRMED:
            updated = replace(record, stage=Stage.CONFIRMED, error=None, error_message=None, rechecking=False)
            next_index = event.index
            if event.index < len(sequence.records) - 1:
                next_index = event.index + 1
            return _with_record(sequence, event.index, updated, current_index=next_index)

        if to_stage == Stage.FAILED:
            updated = replace(
                record,
                stage=Stage.FAILED,
                error=ErrorKind.TRANSACTION_REVERTED,
                error_message=event.message or "Transaction reverted",
                rechecking=False,
            )
            return _with_record(sequence, event.index, updated)

        if record.stage == Stage.TIMEOUT:
            return _with_record(sequence, event.index, replace(record, rechecking=False))

        updated = replace(
            record,
            stage=Stage.TIMEOUT,
            error=ErrorKind.RECEIPT_TIMEOUT,
            error_message=event.message,
        )
        return _with_record(sequence, event.index, updated)

    if isinstance(event, RecheckStarted):
        record = _record_at(sequence, event.index, Stage.TIMEOUT)
        if record.stage != Stage.TIMEOUT or not record.tx_hash:
            raise InvalidTransitionError(
                from_stage=record.stage,
                to_stage=Stage.TIMEOUT,
                message="Only a timed-out submission can be rechecked",
            )
        if sequence.active_count:
            raise InvalidTransitionError(
                from_stage=record.stage,
                to_stage=Stage.TIMEOUT,
                message="Step is already being rechecked" if record.rechecking else "Another step is already in flight",
            )
        return _with_record(sequence, event.index, replace(record, rechecking=True))

    if isinstance(event, RetryRequested):
        if not sequence.records:
            if not sequence.error:
                raise InvalidTransitionError(
                    from_stage=sequence.overall_stage,
                    to_stage=Stage.QUEUED,
                    message="Nothing to retry",
                )
            if not is_retryable(sequence.error):
                raise InvalidTransitionError(
                    from_stage=Stage.FAILED,
                    to_stage=Stage.QUEUED,
                    message=f"Preparation failed with {sequence.error.value}; change the input first",
                )
            if sequence.retry_not_before and event.requested_at < sequence.retry_not_before:
                raise InvalidTransitionError(
                    from_stage=Stage.FAILED,
                    to_stage=Stage.QUEUED,
                    message=f"Rate limited until {sequence.retry_not_before.isoformat()}",
                )
            return replace(sequence, error=None, error_message=None, retry_not_before=None)

        record = sequence.records[sequence.current_index]
        if record.stage not in RETRYABLE_STAGES:
            raise InvalidTransitionError(
                from_stage=record.stage,
                to_stage=Stage.QUEUED,
                message=f"Retry is only allowed from failed or timeout, not {record.stage.value}",
            )
        if record.rechecking:
            raise InvalidTransitionError(
                from_stage=record.stage,
                to_stage=Stage.QUEUED,
                message="Step is being rechecked",
            )
        if sequence.active_count:
            raise InvalidTransitionError(
                from_stage=record.stage,
                to_stage=Stage.QUEUED,
                message="Another step is already in flight",
            )
        if not is_retryable(record.error):
            raise InvalidTransitionError(
                from_stage=record.stage,
                to_stage=Stage.QUEUED,
                message=f"Step failed with {record.error.value}; it cannot be resent as-is",
            )
        previous = record.previous_tx_hashes
        if record.tx_hash:
            previous = previous + (record.tx_hash,)
        updated = replace(
            record,
            stage=Stage.QUEUED,
            tx_hash=None,
            error=None,
            error_message=None,
            previous_tx_hashes=previous,
        )
        return _with_record(sequence, sequence.current_index, updated)

    raise TypeError(f"Unknown sequence event: {event!r}")
