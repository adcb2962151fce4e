"""
Transaction execution models and types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class StepRole(str, Enum):
    """Role of a step within a sequence."""
    APPROVAL = "approval"    # Allowance / validation fee before the action
    PRIMARY = "primary"      # The business action itself


class ReceiptOutcome(str, Enum):
    """Terminal result of waiting for a receipt."""
    CONFIRMED = "confirmed"      # Receipt with success status
    FAILED = "failed"            # Receipt with revert status
    TIMEOUT = "timeout"          # No receipt before the deadline
    CANCELLED = "cancelled"      # Caller stopped waiting


@dataclass(frozen=True)
class Step:
    """
    One unsigned transaction within a sequence.

    Immutable once produced by a request builder for a given attempt.
    ``value`` and ``gas_limit`` are kept as 0x-hex quantities.
    """
    id: str
    role: StepRole
    to: str
    data: str
    chain_id: int
    value: str = "0x0"
    gas_limit: Optional[str] = None
    label: str = ""
    key: str = ""                       # Key in the prepare payload ("validation", "supply", ...)
    requires_follow_up: bool = False    # Auto-advance to the next step once confirmed

    @property
    def is_approval(self) -> bool:
        return self.role == StepRole.APPROVAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "key": self.key,
            "label": self.label,
            "to": self.to,
            "data": self.data,
            "value": self.value,
            "gasLimit": self.gas_limit,
            "chainId": self.chain_id,
            "requiresFollowUp": self.requires_follow_up,
        }


@dataclass
class ReceiptPoll:
    """Intermediate tick yielded while no receipt is available yet."""
    tx_hash: str
    chain_id: int
    attempt: int
    elapsed_seconds: float
    error: Optional[str] = None     # Transient RPC error seen on this attempt


@dataclass
class ReceiptResult:
    """Terminal result of waiting for a receipt."""
    outcome: ReceiptOutcome
    tx_hash: str
    chain_id: int = 1

    # Confirmation details
    block_number: Optional[int] = None
    block_hash: Optional[str] = None
    gas_used: Optional[int] = None

    error: Optional[str] = None
    resolved_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_success(self) -> bool:
        return self.outcome == ReceiptOutcome.CONFIRMED
