"""
Tracking models.

Statuses and the context used to open a durable tracking record for one
sequence.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class TrackingStatus(str, Enum):
    """Lifecycle status of a tracking record."""

    CREATED = "created"        # Record opened, nothing signed yet
    SUBMITTED = "submitted"    # A transaction was accepted by the wallet
    PENDING = "pending"        # Awaiting confirmation past the receipt deadline
    CONFIRMED = "confirmed"    # Every step confirmed
    FAILED = "failed"          # A step failed


class TxHashStatus(str, Enum):
    """Status of one transaction hash within a tracking record."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class TrackingContext:
    """What is being tracked: one user action in one domain."""

    domain: str
    action: str
    chain_id: int
    wallet_address: Optional[str] = None
    amount: Optional[str] = None
    token: Optional[str] = None
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "action": self.action,
            "chainId": self.chain_id,
            "walletAddress": self.wallet_address,
            "amount": self.amount,
            "token": self.token,
            "userId": self.user_id,
        }
