"""
UI-facing view of a sequence.

Derives status labels, available actions and warnings from a ``Sequence``
so a rendering layer only has to display them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..chain_types import explorer_tx_url
from ..errors import ErrorKind, is_retryable, user_message
from .models import RETRYABLE_STAGES, Sequence, Stage, StepRecord


TIMEOUT_WARNING = (
    "Transaction was submitted but is not confirmed yet. It may still land; "
    "check the explorer before retrying."
)
VALIDATION_TIMEOUT_WARNING = (
    "The validation fee transaction may still land. Avoid retrying immediately "
    "so the validation fee is not paid twice."
)
QUEUE_UNSTAKE_HINT = (
    "Withdrawal request submitted. The withdrawal queue can take several days "
    "before funds are claimable."
)
RECHECKING_LABEL = "Checking status"


@dataclass
class StepView:
    id: str
    label: str
    stage: Stage
    status_label: str
    tx_hash: Optional[str] = None
    explorer_url: Optional[str] = None


@dataclass
class SequenceView:
    """Everything a UI needs to render one sequence."""

    title: str
    stage: Stage
    status_label: str
    steps: List[StepView] = field(default_factory=list)
    can_retry: bool = False
    can_switch_network: bool = False
    can_recheck: bool = False
    retry_in_seconds: Optional[int] = None
    warning: Optional[str] = None
    hint: Optional[str] = None
    error_message: Optional[str] = None
    explorer_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "stage": self.stage.value,
            "statusLabel": self.status_label,
            "steps": [
                {
                    "id": s.id,
                    "label": s.label,
                    "stage": s.stage.value,
                    "statusLabel": s.status_label,
                    "txHash": s.tx_hash,
                    "explorerUrl": s.explorer_url,
                }
                for s in self.steps
            ],
            "canRetry": self.can_retry,
            "canSwitchNetwork": self.can_switch_network,
            "canRecheck": self.can_recheck,
            "retryInSeconds": self.retry_in_seconds,
            "warning": self.warning,
            "hint": self.hint,
            "errorMessage": self.error_message,
            "explorerUrl": self.explorer_url,
        }


def _is_queue_unstake(domain: str, action: str, method: Optional[str]) -> bool:
    return domain == "staking" and action == "unstake" and (method or "queue") == "queue"


def stage_label(
    stage: Stage,
    domain: str = "",
    action: str = "",
    method: Optional[str] = None,
) -> str:
    """Short status label for a stage."""
    if stage == Stage.AWAITING_WALLET:
        return "Confirm in wallet"
    if stage == Stage.PENDING:
        return "Pending confirmation" if domain == "staking" else "Pending"
    if stage == Stage.CONFIRMED:
        return "Request submitted" if _is_queue_unstake(domain, action, method) else "Confirmed"
    if stage == Stage.TIMEOUT:
        return "Submitted"
    if stage == Stage.FAILED:
        return "Transaction failed" if domain == "staking" else "Failed"
    return "Queued"


def _step_view(record: StepRecord, domain: str, action: str, method: Optional[str]) -> StepView:
    # Only the primary step of a queue unstake reads "Request submitted"
    step_action = action if record.step.role.value == "primary" else record.step.key
    if record.rechecking:
        status_label = RECHECKING_LABEL
    else:
        status_label = stage_label(record.stage, domain, step_action, method)
    return StepView(
        id=record.step.id,
        label=record.step.label,
        stage=record.stage,
        status_label=status_label,
        tx_hash=record.tx_hash,
        explorer_url=explorer_tx_url(record.step.chain_id, record.tx_hash) if record.tx_hash else None,
    )


def describe(
    sequence: Sequence,
    method: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SequenceView:
    """Build the UI view of ``sequence``."""
    now = now or datetime.now(timezone.utc)
    domain = sequence.domain
    action = sequence.action
    stage = sequence.overall_stage
    current = sequence.current

    steps = [_step_view(record, domain, action, method) for record in sequence.records]

    retry_in: Optional[int] = None
    if sequence.retry_not_before and now < sequence.retry_not_before:
        retry_in = max(1, int((sequence.retry_not_before - now).total_seconds() + 0.999))

    rechecking = current is not None and current.rechecking
    can_retry = (
        stage in RETRYABLE_STAGES
        and retry_in is None
        and not rechecking
        and is_retryable(sequence.current_error)
    )
    can_switch_network = (
        current is not None
        and current.stage == Stage.FAILED
        and current.error == ErrorKind.WRONG_NETWORK
    )
    can_recheck = (
        current is not None
        and current.stage == Stage.TIMEOUT
        and bool(current.tx_hash)
        and not rechecking
    )

    warning: Optional[str] = None
    hint: Optional[str] = None
    error_message: Optional[str] = None

    if stage == Stage.TIMEOUT and current is not None:
        warning = VALIDATION_TIMEOUT_WARNING if current.step.key == "validation" else TIMEOUT_WARNING
    elif stage == Stage.FAILED:
        kind = sequence.current_error or ErrorKind.UNKNOWN
        error_message = user_message(kind)
        if kind == ErrorKind.WRONG_NETWORK:
            warning = error_message
    elif stage == Stage.CONFIRMED and _is_queue_unstake(domain, action, method):
        hint = QUEUE_UNSTAKE_HINT

    latest = sequence.latest_tx_hash
    explorer_url = None
    if latest:
        for step_view in reversed(steps):
            if step_view.tx_hash == latest:
                explorer_url = step_view.explorer_url
                break

    if current is not None:
        status_label = steps[sequence.current_index].status_label
    else:
        status_label = stage_label(stage, domain, action, method)

    return SequenceView(
        title=action.replace("_", " ").title(),
        stage=stage,
        status_label=status_label,
        steps=steps,
        can_retry=can_retry,
        can_switch_network=can_switch_network,
        can_recheck=can_recheck,
        retry_in_seconds=retry_in,
        warning=warning,
        hint=hint,
        error_message=error_message,
        explorer_url=explorer_url,
    )
