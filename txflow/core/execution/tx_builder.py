"""
Transaction builder for constructing steps and wallet payloads.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from ..chain_types import chain_id_to_hex, parse_chain_id
from ..errors import ValidationError
from .models import Step, StepRole


# Plain ETH transfer gas, used when the backend omits gas
DEFAULT_GAS_LIMIT = 21000

_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_tx_hash(value: Any) -> bool:
    """Return ``True`` for a 0x-prefixed 32-byte hex string."""
    return isinstance(value, str) and bool(_TX_HASH_RE.match(value))


def is_address(value: Any) -> bool:
    """Return ``True`` for a 0x-prefixed 20-byte hex string."""
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def to_hex_quantity(value: Any, field_name: str = "value", default: Optional[int] = 0) -> Optional[str]:
    """
    Normalize a numeric field to a 0x-hex quantity.

    Accepts ints, decimal strings and 0x-prefixed hex strings. ``None`` or an
    empty string falls back to ``default`` (returned as ``None`` when the
    default is ``None``).

    Examples:
        >>> to_hex_quantity("1000")
        '0x3e8'
        >>> to_hex_quantity("0x3E8")
        '0x3e8'

    Raises:
        ValidationError: If the value is negative, fractional or not numeric
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return hex(default) if default is not None else None

    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field_name}: {value!r}", field_name=field_name)

    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            if text.lower().startswith("0x"):
                number = int(text, 16)
            else:
                parsed = Decimal(text)
                if parsed != parsed.to_integral_value():
                    raise ValidationError(
                        f"Invalid {field_name}: {value!r} is not a whole number",
                        field_name=field_name,
                    )
                number = int(parsed)
        except (ValueError, InvalidOperation, OverflowError):
            raise ValidationError(f"Invalid {field_name}: {value!r}", field_name=field_name)
    else:
        raise ValidationError(f"Invalid {field_name}: {value!r}", field_name=field_name)

    if number < 0:
        raise ValidationError(f"Invalid {field_name}: must not be negative", field_name=field_name)
    return hex(number)


class TransactionBuilder:
    """
    Builds steps from prepare payload entries and wallet payloads from steps.

    Handles:
    - Numeric normalization of value / gas
    - Chain id resolution with a domain default
    - The ``sendTransaction`` payload shape wallets expect
    """

    @staticmethod
    def step_id(index: int, label: str) -> str:
        """Stable step id, e.g. ``step-0-validation``."""
        slug = re.sub(r"[^a-z0-9]+", "-", label.lower()).strip("-") or "step"
        return f"step-{index}-{slug}"

    @staticmethod
    def build_step(
        raw: Mapping[str, Any],
        index: int,
        key: str,
        role: StepRole,
        default_chain_id: int,
        label: str = "",
        requires_follow_up: bool = False,
    ) -> Optional[Step]:
        """
        Build a Step from one entry of a prepare response.

        Args:
            raw: The ``{to, data, value, gasLimit, chainId}`` mapping
            index: Position of the step in the sequence
            key: Key of the entry in the payload ("approval", "supply", ...)
            role: Role of the step
            default_chain_id: Chain used when the entry has no chainId
            label: Human-readable label
            requires_follow_up: Whether the next step runs once this confirms

        Returns:
            Step, or None when the entry has no target or calldata
        """
        to = raw.get("to")
        data = raw.get("data")
        if not to or not data:
            return None

        chain_id = default_chain_id
        if raw.get("chainId") is not None:
            chain_id = parse_chain_id(raw.get("chainId"))
            if chain_id is None:
                raise ValidationError(f"Invalid chainId: {raw.get('chainId')!r}", field_name="chainId")

        gas = raw.get("gasLimit", raw.get("gas"))
        label = label or key.replace("_", " ").title()

        return Step(
            id=TransactionBuilder.step_id(index, label),
            role=role,
            to=str(to),
            data=data if str(data).startswith("0x") else f"0x{data}",
            chain_id=chain_id,
            value=to_hex_quantity(raw.get("value"), "value", default=0),
            gas_limit=to_hex_quantity(gas, "gasLimit", default=None),
            label=label,
            key=key,
            requires_follow_up=requires_follow_up,
        )

    @staticmethod
    def to_wallet_payload(step: Step, from_address: Optional[str] = None) -> Dict[str, Any]:
        """Convert a step into a ``sendTransaction`` payload."""
        tx = {
            "to": step.to,
            "data": step.data,
            "value": to_hex_quantity(step.value, "value", default=0),
            "gas": to_hex_quantity(step.gas_limit, "gasLimit", default=DEFAULT_GAS_LIMIT),
            "chainId": chain_id_to_hex(step.chain_id),
        }
        if from_address:
            tx["from"] = from_address
        return tx
