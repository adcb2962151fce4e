"""
Request builder base.

A request builder maps a business action (``supply``, ``unstake``, ...) to an
ordered list of steps by calling the domain's prepare backend. Input bounds
are checked locally before any network call.
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from ...providers.prepare import PrepareClient
from ..chain_types import is_supported_chain, parse_chain_id
from ..errors import ServiceUnavailable, ValidationError
from ..execution.models import Step, StepRole
from ..execution.tx_builder import TransactionBuilder, is_address


logger = logging.getLogger(__name__)

# Payload keys that precede the action, in execution order
APPROVAL_KEYS: Tuple[str, ...] = ("approval", "validation")

# Payload keys holding the action transaction
PRIMARY_KEYS: Tuple[str, ...] = (
    "supply",
    "withdraw",
    "borrow",
    "repay",
    "stake",
    "unstake",
    "request",
)


def parse_amount(value: Any) -> Decimal:
    """Parse a positive decimal amount."""
    if isinstance(value, bool) or value is None:
        raise ValidationError("Amount is required", field_name="amount")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {value!r}", field_name="amount")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be greater than zero", field_name="amount")
    return amount


class RequestBuilder(ABC):
    """Base request builder for one domain."""

    domain: str
    actions: FrozenSet[str]
    default_chain_id: int
    supported_chain_ids: FrozenSet[int]

    def __init__(self, client: Optional[PrepareClient] = None):
        self.client = client or PrepareClient()

    def validate(self, action: str, params: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Check inputs and return normalized params.

        Raises:
            ValidationError: Unknown action, unsupported chain or bad params
        """
        action = (action or "").lower()
        if action not in self.actions:
            raise ValidationError(
                f"Unsupported {self.domain} action: {action or '<empty>'}",
                field_name="action",
            )

        chain_id = self.default_chain_id
        if params.get("chain_id") is not None:
            chain_id = parse_chain_id(params.get("chain_id"))
            if chain_id is None:
                raise ValidationError(f"Invalid chain id: {params.get('chain_id')!r}", field_name="chain_id")
        if not is_supported_chain(chain_id) or chain_id not in self.supported_chain_ids:
            raise ValidationError(
                f"Chain {chain_id} is not supported for {self.domain}",
                field_name="chain_id",
            )

        wallet_address = params.get("wallet_address")
        if wallet_address is not None and not is_address(wallet_address):
            raise ValidationError(f"Invalid wallet address: {wallet_address!r}", field_name="wallet_address")

        normalized = dict(params)
        normalized["action"] = action
        normalized["chain_id"] = chain_id
        normalized["amount"] = parse_amount(params.get("amount"))
        return self.validate_domain(action, normalized)

    def validate_domain(self, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Domain-specific checks; returns the params."""
        return params

    @abstractmethod
    def build_payload(self, action: str, params: Mapping[str, Any]) -> Dict[str, Any]:
        """Request body for the prepare backend."""
        pass

    def step_label(self, key: str, params: Mapping[str, Any]) -> str:
        return key.replace("_", " ").title()

    async def prepare(self, action: str, params: Mapping[str, Any]) -> List[Step]:
        """
        Produce the ordered steps for ``action``.

        Raises:
            ValidationError: Inputs out of bounds
            RateLimited: Backend returned 429
            ServiceUnavailable: Backend failure or no usable transaction
        """
        normalized = self.validate(action, params)
        action = normalized["action"]
        payload = self.build_payload(action, normalized)

        data = await self.client.prepare(self.domain, action, payload)
        steps = self.steps_from_payload(action, data, normalized)
        logger.info(
            f"Prepared {self.domain}/{action}: "
            f"{[step.key for step in steps]} on chain {normalized['chain_id']}"
        )
        return steps

    def steps_from_payload(
        self,
        action: str,
        data: Mapping[str, Any],
        params: Mapping[str, Any],
    ) -> List[Step]:
        """
        Map a prepare response to steps.

        Approval-like entries come first; exactly one primary entry follows,
        preferring the entry named after the action. Every step before the
        last is flagged ``requires_follow_up``.
        """
        chain_id = params.get("chain_id", self.default_chain_id)
        ordered: List[Tuple[str, StepRole, Mapping[str, Any]]] = []

        for key in APPROVAL_KEYS:
            entry = data.get(key)
            if isinstance(entry, Mapping) and entry.get("to") and entry.get("data"):
                ordered.append((key, StepRole.APPROVAL, entry))

        primary_order = [action] + [key for key in PRIMARY_KEYS if key != action]
        for key in primary_order:
            entry = data.get(key)
            if isinstance(entry, Mapping) and entry.get("to") and entry.get("data"):
                ordered.append((key, StepRole.PRIMARY, entry))
                break
        else:
            raise ServiceUnavailable(
                f"Prepare {self.domain}/{action} returned no usable {action} transaction",
                provider=self.domain,
            )

        steps: List[Step] = []
        for index, (key, role, entry) in enumerate(ordered):
            step = TransactionBuilder.build_step(
                entry,
                index=index,
                key=key,
                role=role,
                default_chain_id=chain_id,
                label=self.step_label(key, params),
                requires_follow_up=index < len(ordered) - 1,
            )
            if step is not None:
                steps.append(step)
        return steps
