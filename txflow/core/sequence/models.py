"""
Sequence State Machine Models

Defines stages, step records, the sequence value and the events that move it.
All values are immutable; the reducer returns new instances.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union
from uuid import uuid4

from ..errors import ErrorKind
from ..execution.models import ReceiptOutcome, Step


class Stage(str, Enum):
    """Lifecycle stage of one step."""

    QUEUED = "queued"                     # Not dispatched yet (only legal initial stage)
    AWAITING_WALLET = "awaiting_wallet"   # Waiting for the user to sign
    PENDING = "pending"                   # Submitted, waiting for a receipt
    CONFIRMED = "confirmed"               # Receipt with success status
    FAILED = "failed"                     # Wallet failure or on-chain revert
    TIMEOUT = "timeout"                   # No receipt before the deadline; may still land


ACTIVE_STAGES: FrozenSet[Stage] = frozenset({Stage.AWAITING_WALLET, Stage.PENDING})
RETRYABLE_STAGES: FrozenSet[Stage] = frozenset({Stage.FAILED, Stage.TIMEOUT})


@dataclass(frozen=True)
class StepRecord:
    """A step and its progress within the sequence."""

    step: Step
    stage: Stage = Stage.QUEUED
    tx_hash: Optional[str] = None
    error: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    attempts: int = 0
    previous_tx_hashes: Tuple[str, ...] = ()
    rechecking: bool = False      # A recheck of the timed-out hash is polling

    @property
    def is_active(self) -> bool:
        return self.stage in ACTIVE_STAGES or self.rechecking

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step.to_dict(),
            "stage": self.stage.value,
            "txHash": self.tx_hash,
            "error": self.error.value if self.error else None,
            "errorMessage": self.error_message,
            "attempts": self.attempts,
            "previousTxHashes": list(self.previous_tx_hashes),
            "rechecking": self.rechecking,
        }


@dataclass(frozen=True)
class Sequence:
    """Ordered step records for one user action."""

    domain: str
    action: str
    id: str = field(default_factory=lambda: str(uuid4()))
    records: Tuple[StepRecord, ...] = ()
    current_index: int = 0

    # Preparation failure (no records exist)
    error: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    retry_not_before: Optional[datetime] = None

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def current(self) -> Optional[StepRecord]:
        if not self.records:
            return None
        return self.records[self.current_index]

    @property
    def overall_stage(self) -> Stage:
        """
        Stage of the step in flight, ``confirmed`` only once every step is
        confirmed. A sequence whose preparation failed is ``failed``.
        """
        if not self.records:
            return Stage.FAILED if self.error else Stage.QUEUED
        if all(record.stage == Stage.CONFIRMED for record in self.records):
            return Stage.CONFIRMED
        return self.records[self.current_index].stage

    @property
    def is_terminal(self) -> bool:
        return self.overall_stage == Stage.CONFIRMED

    @property
    def active_count(self) -> int:
        return sum(1 for record in self.records if record.is_active)

    @property
    def latest_tx_hash(self) -> Optional[str]:
        for record in reversed(self.records):
            if record.tx_hash:
                return record.tx_hash
        return None

    @property
    def current_error(self) -> Optional[ErrorKind]:
        if not self.records:
            return self.error
        return self.records[self.current_index].error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "domain": self.domain,
            "action": self.action,
            "overallStage": self.overall_stage.value,
            "currentIndex": self.current_index,
            "records": [record.to_dict() for record in self.records],
            "error": self.error.value if self.error else None,
            "errorMessage": self.error_message,
            "retryNotBefore": self.retry_not_before.isoformat() if self.retry_not_before else None,
        }


# Events


@dataclass(frozen=True)
class StepsPrepared:
    steps: Tuple[Step, ...]


@dataclass(frozen=True)
class PrepareFailed:
    error: ErrorKind
    message: str
    retry_not_before: Optional[datetime] = None


@dataclass(frozen=True)
class StepDispatched:
    index: int


@dataclass(frozen=True)
class StepSubmitted:
    index: int
    tx_hash: str


@dataclass(frozen=True)
class WalletFailed:
    index: int
    error: ErrorKind
    message: str


@dataclass(frozen=True)
class RecheckStarted:
    index: int


@dataclass(frozen=True)
class ReceiptResolved:
    index: int
    outcome: ReceiptOutcome
    message: Optional[str] = None
    recheck: bool = False         # Resolution of a user-initiated recheck of a timed-out step


@dataclass(frozen=True)
class RetryRequested:
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


SequenceEvent = Union[
    StepsPrepared,
    PrepareFailed,
    StepDispatched,
    StepSubmitted,
    WalletFailed,
    RecheckStarted,
    ReceiptResolved,
    RetryRequested,
]


class InvalidTransitionError(Exception):
    """Raised when an event is not legal for the sequence's current state."""

    def __init__(
        self,
        from_stage: Stage,
        to_stage: Stage,
        message: Optional[str] = None,
    ):
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.message = message or f"Cannot transition from {from_stage.value} to {to_stage.value}"
        super().__init__(self.message)
