"""
Tests for the wallet executor and the JSON-RPC development wallet.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from txflow.core.errors import (
    ErrorKind,
    UserRejected,
    WalletIncompatible,
    WalletSubmitError,
    WrongNetwork,
)
from txflow.core.execution import JsonRpcWallet, Step, StepRole, WalletExecutor
from txflow.providers.rpc import RpcError


TX_HASH = "0x" + "aa" * 32
TOKEN = "0x" + "11" * 20
FROM = "0x" + "22" * 20


class WalletError(Exception):
    def __init__(self, message: str, code: int = None):
        super().__init__(message)
        self.code = code


class FakeWallet:
    """Minimal EIP-1193 style wallet."""

    def __init__(self, chain_id="0xa86a", response=None, send_error=None, switch_error=None):
        self.chain_id = chain_id
        self.response = response if response is not None else {"transactionHash": TX_HASH}
        self.send_error = send_error
        self.switch_error = switch_error
        self.requests = []
        self.sent = []

    async def request(self, method, params=None):
        self.requests.append((method, params))
        if method == "eth_chainId":
            return self.chain_id
        if method == "wallet_switchEthereumChain":
            if self.switch_error:
                raise self.switch_error
            self.chain_id = params[0]["chainId"]
            return None
        raise WalletError(f"unsupported method {method}")

    async def send_transaction(self, tx):
        self.sent.append(tx)
        if self.send_error:
            raise self.send_error
        return self.response


def make_step(chain_id=43114, key="supply"):
    return Step(
        id=f"step-0-{key}",
        role=StepRole.PRIMARY,
        to=TOKEN,
        data="0x1234",
        chain_id=chain_id,
        value="0x0",
        gas_limit=hex(300000),
        label=key.title(),
        key=key,
    )


# =============================================================================
# Wallet Compatibility
# =============================================================================


class TestWalletCompatibility:
    """Test rejection of missing or non-EVM wallets"""

    @pytest.mark.asyncio
    async def test_no_wallet(self):
        """A missing wallet is incompatible"""
        executor = WalletExecutor(None)

        with pytest.raises(WalletIncompatible):
            await executor.execute(make_step())

    @pytest.mark.asyncio
    async def test_wallet_without_send(self):
        """A wallet that cannot send EVM transactions is incompatible"""

        class SigningOnlyWallet:
            async def request(self, method, params=None):
                return "0xa86a"

        executor = WalletExecutor(SigningOnlyWallet())

        with pytest.raises(WalletIncompatible):
            await executor.execute(make_step())

    @pytest.mark.asyncio
    async def test_unreadable_chain(self):
        """An unparseable eth_chainId response is incompatible"""
        wallet = FakeWallet(chain_id="avalanche")

        with pytest.raises(WalletIncompatible):
            await WalletExecutor(wallet).execute(make_step())

        assert wallet.sent == []


# =============================================================================
# Network Check
# =============================================================================


class TestNetworkCheck:
    """Test the active chain check before signing"""

    @pytest.mark.asyncio
    async def test_wrong_network_sends_nothing(self):
        """Wallet on Avalanche, step on Ethereum: WrongNetwork and no send"""
        wallet = FakeWallet(chain_id="0xa86a")
        wallet.send_transaction = AsyncMock(return_value=TX_HASH)

        with pytest.raises(WrongNetwork) as exc_info:
            await WalletExecutor(wallet).execute(make_step(chain_id=1, key="stake"))

        assert exc_info.value.expected == 1
        assert exc_info.value.actual == 43114
        assert exc_info.value.kind == ErrorKind.WRONG_NETWORK
        wallet.send_transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_decimal_chain_id_accepted(self):
        """Wallets reporting a decimal chain id still match"""
        wallet = FakeWallet(chain_id="43114")

        assert await WalletExecutor(wallet).execute(make_step()) == TX_HASH


# =============================================================================
# Submission
# =============================================================================


class TestSubmission:
    """Test transaction submission and hash handling"""

    @pytest.mark.asyncio
    async def test_returns_hash_and_normalizes_payload(self):
        """The wallet receives hex fields and the hash is returned"""
        wallet = FakeWallet()
        executor = WalletExecutor(wallet, from_address=FROM)

        tx_hash = await executor.execute(make_step())

        assert tx_hash == TX_HASH
        assert wallet.sent == [
            {
                "to": TOKEN,
                "data": "0x1234",
                "value": "0x0",
                "gas": hex(300000),
                "chainId": "0xa86a",
                "from": FROM,
            }
        ]

    @pytest.mark.asyncio
    async def test_string_response(self):
        """Wallets returning the bare hash are supported"""
        wallet = FakeWallet(response=TX_HASH)

        assert await WalletExecutor(wallet).execute(make_step()) == TX_HASH

    @pytest.mark.asyncio
    async def test_invalid_hash(self):
        """A response without a well-formed hash is a submit error"""
        wallet = FakeWallet(response={"hash": "0x1234"})

        with pytest.raises(WalletSubmitError):
            await WalletExecutor(wallet).execute(make_step())

    @pytest.mark.asyncio
    async def test_rejection_by_code(self):
        """EIP-1193 code 4001 becomes UserRejected"""
        wallet = FakeWallet(send_error=WalletError("nope", code=4001))

        with pytest.raises(UserRejected):
            await WalletExecutor(wallet).execute(make_step())

    @pytest.mark.asyncio
    async def test_rejection_by_message(self):
        """Rejection messages without a code become UserRejected"""
        wallet = FakeWallet(send_error=Exception("User denied transaction signature"))

        with pytest.raises(UserRejected):
            await WalletExecutor(wallet).execute(make_step())

    @pytest.mark.asyncio
    async def test_other_wallet_failure(self):
        """Other wallet failures become WalletSubmitError"""
        wallet = FakeWallet(send_error=Exception("nonce too low"))

        with pytest.raises(WalletSubmitError) as exc_info:
            await WalletExecutor(wallet).execute(make_step())

        assert "nonce too low" in exc_info.value.message


# =============================================================================
# Network Switch
# =============================================================================


class TestSwitchNetwork:
    """Test wallet_switchEthereumChain handling"""

    @pytest.mark.asyncio
    async def test_switch_then_execute(self):
        """After switching, the same step can be submitted"""
        wallet = FakeWallet(chain_id="0xa86a")
        executor = WalletExecutor(wallet)

        await executor.switch_network(1)

        assert ("wallet_switchEthereumChain", [{"chainId": "0x1"}]) in wallet.requests
        assert await executor.execute(make_step(chain_id=1, key="stake")) == TX_HASH

    @pytest.mark.asyncio
    async def test_unknown_chain(self):
        """Code 4902 means the wallet does not know the chain"""
        wallet = FakeWallet(switch_error=WalletError("Unrecognized chain", code=4902))

        with pytest.raises(WalletIncompatible):
            await WalletExecutor(wallet).switch_network(1)

    @pytest.mark.asyncio
    async def test_switch_rejected(self):
        """Declining the switch is a user rejection"""
        wallet = FakeWallet(switch_error=WalletError("User rejected the request.", code=4001))

        with pytest.raises(UserRejected):
            await WalletExecutor(wallet).switch_network(1)

    @pytest.mark.asyncio
    async def test_switch_other_failure(self):
        """Other switch failures leave the wallet on the wrong network"""
        wallet = FakeWallet(switch_error=WalletError("internal error", code=-32603))

        with pytest.raises(WrongNetwork):
            await WalletExecutor(wallet).switch_network(1)


# =============================================================================
# JSON-RPC Wallet
# =============================================================================


class TestJsonRpcWallet:
    """Test the node-backed development wallet"""

    @pytest.fixture
    def rpc(self):
        rpc = MagicMock()
        rpc.call = AsyncMock(return_value=TX_HASH)
        rpc.url_for = MagicMock(side_effect=lambda chain_id: "http://node" if chain_id == 1 else None)
        return rpc

    @pytest.mark.asyncio
    async def test_send_transaction_uses_node_account(self, rpc):
        """eth_sendTransaction carries the managed account"""
        wallet = JsonRpcWallet(rpc, chain_id=1, from_address=FROM)

        result = await wallet.send_transaction({"to": TOKEN, "data": "0x"})

        assert result == TX_HASH
        rpc.call.assert_awaited_once_with(1, "eth_sendTransaction", [{"from": FROM, "to": TOKEN, "data": "0x"}])

    @pytest.mark.asyncio
    async def test_request_forwards_to_node(self, rpc):
        """Other requests go to the active chain's node"""
        rpc.call.return_value = "0x1"
        wallet = JsonRpcWallet(rpc, chain_id=1, from_address=FROM)

        assert await wallet.request("eth_chainId") == "0x1"
        rpc.call.assert_awaited_once_with(1, "eth_chainId", [])

    @pytest.mark.asyncio
    async def test_switch_to_unconfigured_chain(self, rpc):
        """Switching to a chain without an RPC endpoint is unrecognized"""
        wallet = JsonRpcWallet(rpc, chain_id=1, from_address=FROM)

        with pytest.raises(RpcError) as exc_info:
            await wallet.request("wallet_switchEthereumChain", [{"chainId": "0xa86a"}])

        assert exc_info.value.code == 4902
        assert wallet.chain_id == 1

    @pytest.mark.asyncio
    async def test_executor_maps_unconfigured_chain(self, rpc):
        """The executor reports an unknown chain as incompatible"""
        executor = WalletExecutor(JsonRpcWallet(rpc, chain_id=1, from_address=FROM))

        with pytest.raises(WalletIncompatible):
            await executor.switch_network(43114)
