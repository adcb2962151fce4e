"""
Wallet executor.

Submits one step through the connected wallet. The wallet's active chain is
read and compared with the step's chain before any signing request is made.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ...providers.rpc import RpcError, RpcProvider
from ..chain_types import chain_id_to_hex, parse_chain_id
from ..errors import (
    ErrorKind,
    TxFlowError,
    UserRejected,
    WalletIncompatible,
    WalletSubmitError,
    WrongNetwork,
    classify_error,
)
from .models import Step
from .tx_builder import TransactionBuilder, is_tx_hash


logger = logging.getLogger(__name__)

# EIP-3085: chain not added to the wallet
UNRECOGNIZED_CHAIN_CODE = 4902


@runtime_checkable
class WalletProvider(Protocol):
    """The EVM wallet surface the executor needs (EIP-1193 style)."""

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        ...

    async def send_transaction(self, tx: Dict[str, Any]) -> Any:
        ...


def _extract_tx_hash(response: Any) -> Optional[str]:
    if isinstance(response, str):
        return response
    if isinstance(response, dict):
        return response.get("transactionHash") or response.get("hash")
    return getattr(response, "transactionHash", None) or getattr(response, "hash", None)


class WalletExecutor:
    """
    Executes steps through a connected wallet.

    Responsibilities:
    - Reject wallets that cannot submit EVM transactions
    - Verify the active chain before signing
    - Normalize numeric fields for the wallet
    - Translate wallet failures into typed errors
    """

    def __init__(self, wallet: Optional[Any], from_address: Optional[str] = None):
        self.wallet = wallet
        self.from_address = from_address

    def _require_wallet(self) -> WalletProvider:
        wallet = self.wallet
        if wallet is None:
            raise WalletIncompatible("No wallet connected")
        for method in ("request", "send_transaction"):
            if not callable(getattr(wallet, method, None)):
                raise WalletIncompatible("Connected wallet cannot submit EVM transactions")
        return wallet

    async def active_chain_id(self) -> int:
        """Read the wallet's active chain via ``eth_chainId``."""
        wallet = self._require_wallet()
        try:
            raw = await wallet.request("eth_chainId")
        except Exception as e:
            raise WalletIncompatible(f"Could not read the wallet network: {e}") from e

        chain_id = parse_chain_id(raw)
        if chain_id is None:
            raise WalletIncompatible(f"Wallet reported an invalid chain id: {raw!r}")
        return chain_id

    async def execute(self, step: Step) -> str:
        """
        Submit a step and return its transaction hash.

        Raises:
            WalletIncompatible: No wallet or no EVM support
            WrongNetwork: Wallet is on another chain; nothing was sent
            UserRejected: The user declined in the wallet
            WalletSubmitError: The wallet failed or returned no usable hash
        """
        wallet = self._require_wallet()

        actual = await self.active_chain_id()
        if actual != step.chain_id:
            logger.info(
                f"Step {step.id}: wallet on chain {actual}, expected {step.chain_id}"
            )
            raise WrongNetwork(expected=step.chain_id, actual=actual)

        payload = TransactionBuilder.to_wallet_payload(step, self.from_address)

        try:
            response = await wallet.send_transaction(payload)
        except TxFlowError:
            raise
        except Exception as e:
            context = classify_error(e)
            if context.kind == ErrorKind.USER_REJECTED:
                raise UserRejected() from e
            raise WalletSubmitError(f"Wallet failed to submit transaction: {e}") from e

        tx_hash = _extract_tx_hash(response)
        if not is_tx_hash(tx_hash):
            raise WalletSubmitError(f"Wallet returned an invalid transaction hash: {tx_hash!r}")

        logger.info(f"Step {step.id} submitted on chain {step.chain_id}: {tx_hash}")
        return tx_hash

    async def switch_network(self, chain_id: int) -> None:
        """Ask the wallet to switch to ``chain_id`` (``wallet_switchEthereumChain``)."""
        wallet = self._require_wallet()
        try:
            await wallet.request(
                "wallet_switchEthereumChain",
                [{"chainId": chain_id_to_hex(chain_id)}],
            )
        except Exception as e:
            if getattr(e, "code", None) == UNRECOGNIZED_CHAIN_CODE:
                raise WalletIncompatible(f"Wallet does not know chain {chain_id}") from e
            if classify_error(e).kind == ErrorKind.USER_REJECTED:
                raise UserRejected("Network switch rejected in wallet") from e
            raise WrongNetwork(expected=chain_id, actual=None) from e

        logger.info(f"Wallet switched to chain {chain_id}")


class JsonRpcWallet:
    """
    Development wallet backed by a node's unlocked accounts.

    Sends ``eth_sendTransaction`` to the RPC endpoint of the active chain, so
    the node signs with one of its managed accounts.
    """

    def __init__(self, rpc: RpcProvider, chain_id: int, from_address: str):
        self.rpc = rpc
        self.chain_id = chain_id
        self.from_address = from_address

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        if method == "wallet_switchEthereumChain":
            target = parse_chain_id((params or [{}])[0].get("chainId"))
            if target is None or not self.rpc.url_for(target):
                raise RpcError(f"Unrecognized chain {target}", code=UNRECOGNIZED_CHAIN_CODE)
            self.chain_id = target
            return None
        return await self.rpc.call(self.chain_id, method, params or [])

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        payload = {"from": self.from_address, **tx}
        return await self.rpc.call(self.chain_id, "eth_sendTransaction", [payload])
