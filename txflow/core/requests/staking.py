"""Staking request builder (Ethereum mainnet)."""

from typing import Any, Dict, Mapping

from ..chain_types import ETHEREUM_CHAIN_ID
from ..errors import ValidationError
from .base import RequestBuilder


STAKING_ACTIONS = frozenset({"stake", "unstake"})

UNSTAKE_METHODS = frozenset({"queue", "instant"})
DEFAULT_UNSTAKE_METHOD = "queue"


class StakingRequestBuilder(RequestBuilder):
    """
    Builds stake / unstake sequences.

    Queue unstakes usually need an allowance first, so the backend returns
    ``approval`` followed by ``unstake`` (or ``request``).
    """

    domain = "staking"
    actions = STAKING_ACTIONS
    default_chain_id = ETHEREUM_CHAIN_ID
    supported_chain_ids = frozenset({ETHEREUM_CHAIN_ID})

    def validate_domain(self, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if action == "unstake":
            method = (params.get("method") or DEFAULT_UNSTAKE_METHOD).lower()
            if method not in UNSTAKE_METHODS:
                raise ValidationError(f"Unsupported unstake method: {method}", field_name="method")
            params["method"] = method
        else:
            params.pop("method", None)
        return params

    def build_payload(self, action: str, params: Mapping[str, Any]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "amount": str(params["amount"]),
            "chainId": params["chain_id"],
        }
        if params.get("method"):
            payload["method"] = params["method"]
        if params.get("wallet_address"):
            payload["userAddress"] = params["wallet_address"]
        return payload

    def step_label(self, key: str, params: Mapping[str, Any]) -> str:
        if key in ("unstake", "request") and params.get("method") == "queue":
            return "Request withdrawal"
        return super().step_label(key, params)
