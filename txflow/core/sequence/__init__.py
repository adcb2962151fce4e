"""
Step Sequence State Machine

Explicit sequence / step-record values, a pure reducer over sequence events,
and the async sequencer that drives a user action to confirmation.
"""

from .labels import SequenceView, StepView, describe, stage_label
from .models import (
    ACTIVE_STAGES,
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
from .reducer import TRANSITIONS, can_transition, reduce
from .sequencer import Sequencer

__all__ = [
    # Sequencer
    "Sequencer",
    # Reducer
    "reduce",
    "can_transition",
    "TRANSITIONS",
    # Models
    "Stage",
    "ACTIVE_STAGES",
    "RETRYABLE_STAGES",
    "StepRecord",
    "Sequence",
    # Events
    "SequenceEvent",
    "StepsPrepared",
    "PrepareFailed",
    "StepDispatched",
    "StepSubmitted",
    "WalletFailed",
    "RecheckStarted",
    "ReceiptResolved",
    "RetryRequested",
    # Errors
    "InvalidTransitionError",
    # Labels
    "SequenceView",
    "StepView",
    "describe",
    "stage_label",
]
