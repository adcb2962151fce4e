"""
Chain identification types and utilities.

EVM chains are identified by their integer chain ID. Wallets report the
active chain as a 0x-prefixed hex quantity (``eth_chainId``), so both forms
are handled here.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

ETHEREUM_CHAIN_ID: int = 1
AVALANCHE_CHAIN_ID: int = 43114

# Default chain when none specified
DEFAULT_CHAIN_ID: int = ETHEREUM_CHAIN_ID

CHAIN_METADATA: Dict[int, Dict[str, Any]] = {
    ETHEREUM_CHAIN_ID: {
        'name': 'Ethereum',
        'aliases': ['ethereum', 'eth', 'mainnet'],
        'native_symbol': 'ETH',
        'explorer_tx_url': 'https://etherscan.io/tx/{tx_hash}',
    },
    AVALANCHE_CHAIN_ID: {
        'name': 'Avalanche C-Chain',
        'aliases': ['avalanche', 'avax', 'c-chain'],
        'native_symbol': 'AVAX',
        'explorer_tx_url': 'https://snowtrace.io/tx/{tx_hash}',
    },
}


def is_supported_chain(chain_id: int) -> bool:
    """Return ``True`` if the chain ID is part of the supported EVM set."""

    return chain_id in CHAIN_METADATA


def chain_id_to_hex(chain_id: int) -> str:
    """Encode a chain ID the way EIP-1193 wallets expect it (``0xa86a``)."""
    return hex(int(chain_id))


def parse_chain_id(value: Any) -> Optional[int]:
    """
    Parse a chain ID reported by a wallet or backend.

    Accepts ints, decimal strings and 0x-prefixed hex strings. Returns
    ``None`` when the value cannot be interpreted.

    Examples:
        >>> parse_chain_id("0xa86a")
        43114
        >>> parse_chain_id("1")
        1
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    try:
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text, 10)
    except ValueError:
        return None


def chain_id_to_name(chain_id: int) -> str:
    metadata = CHAIN_METADATA.get(chain_id)
    if metadata:
        return metadata.get("name", f"Chain {chain_id}")
    return f"Chain {chain_id}"


def explorer_tx_url(chain_id: int, tx_hash: str) -> Optional[str]:
    metadata = CHAIN_METADATA.get(chain_id)
    if not metadata or not tx_hash:
        return None
    return metadata["explorer_tx_url"].format(tx_hash=tx_hash)


__all__ = [
    "ETHEREUM_CHAIN_ID",
    "AVALANCHE_CHAIN_ID",
    "DEFAULT_CHAIN_ID",
    "CHAIN_METADATA",
    "is_supported_chain",
    "chain_id_to_hex",
    "parse_chain_id",
    "chain_id_to_name",
    "explorer_tx_url",
]
