"""
Request Builders

Map a business action to the ordered steps needed to perform it:
- LendingRequestBuilder: supply / withdraw / borrow / repay
- StakingRequestBuilder: stake / unstake (queue or instant)
"""

from typing import Optional

from ...providers.prepare import PrepareClient
from ..errors import ValidationError
from .base import APPROVAL_KEYS, PRIMARY_KEYS, RequestBuilder, parse_amount
from .lending import LENDING_ACTIONS, LendingRequestBuilder
from .staking import STAKING_ACTIONS, UNSTAKE_METHODS, StakingRequestBuilder


BUILDERS = {
    LendingRequestBuilder.domain: LendingRequestBuilder,
    StakingRequestBuilder.domain: StakingRequestBuilder,
}


def get_request_builder(domain: str, client: Optional[PrepareClient] = None) -> RequestBuilder:
    """Return the request builder for ``domain``."""
    builder_cls = BUILDERS.get((domain or "").lower())
    if builder_cls is None:
        raise ValidationError(f"Unknown domain: {domain}", field_name="domain")
    return builder_cls(client=client)


__all__ = [
    "APPROVAL_KEYS",
    "PRIMARY_KEYS",
    "RequestBuilder",
    "parse_amount",
    "LENDING_ACTIONS",
    "LendingRequestBuilder",
    "STAKING_ACTIONS",
    "UNSTAKE_METHODS",
    "StakingRequestBuilder",
    "BUILDERS",
    "get_request_builder",
]
