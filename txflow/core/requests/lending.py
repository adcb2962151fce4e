"""Lending request builder (Avalanche C-Chain)."""

from typing import Any, Dict, Mapping

from ..chain_types import AVALANCHE_CHAIN_ID
from ..errors import ValidationError
from ..execution.tx_builder import is_address
from .base import RequestBuilder


LENDING_ACTIONS = frozenset({"supply", "withdraw", "borrow", "repay"})


class LendingRequestBuilder(RequestBuilder):
    """
    Builds supply / withdraw / borrow / repay sequences.

    The backend may return a ``validation`` transaction (the validation fee)
    ahead of the action; it becomes the approval step.
    """

    domain = "lending"
    actions = LENDING_ACTIONS
    default_chain_id = AVALANCHE_CHAIN_ID
    supported_chain_ids = frozenset({AVALANCHE_CHAIN_ID})

    def validate_domain(self, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        token = params.get("token")
        if not is_address(token):
            raise ValidationError(f"Invalid token address: {token!r}", field_name="token")
        return params

    def build_payload(self, action: str, params: Mapping[str, Any]) -> Dict[str, Any]:
        payload = {
            "tokenAddress": params["token"],
            "amount": str(params["amount"]),
            "chainId": params["chain_id"],
        }
        if params.get("wallet_address"):
            payload["userAddress"] = params["wallet_address"]
        return payload
