"""
JSON-RPC client for EVM chains.

Used by the receipt waiter (``eth_getTransactionReceipt``) and by the
developer wallet (``eth_chainId``, ``eth_sendTransaction``).
"""

from typing import Any, Dict, List, Optional

import httpx

from ..config import settings


class RpcError(Exception):
    """JSON-RPC call failed (transport error or ``error`` member in the response)."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data


class RpcProvider:
    """
    Async JSON-RPC client keyed by chain id.

    Example usage:
        rpc = RpcProvider()
        receipt = await rpc.get_transaction_receipt(43114, "0x...")
    """

    def __init__(
        self,
        rpc_urls: Optional[Dict[int, str]] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._rpc_urls = dict(rpc_urls if rpc_urls is not None else settings.rpc_urls)
        self.timeout = timeout or settings.request_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._request_id = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def url_for(self, chain_id: int) -> Optional[str]:
        return self._rpc_urls.get(chain_id)

    async def call(self, chain_id: int, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Make an RPC call to the chain.

        Raises:
            RpcError: If no endpoint is configured, the request fails, or the
                node returns an error object
        """
        rpc_url = self.url_for(chain_id)
        if not rpc_url:
            raise RpcError(f"No RPC URL configured for chain {chain_id}")

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": self._request_id,
        }

        client = await self._get_client()
        try:
            response = await client.post(rpc_url, json=payload)
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPStatusError as e:
            raise RpcError(f"RPC HTTP {e.response.status_code} from {method}") from e
        except httpx.RequestError as e:
            raise RpcError(f"RPC request failed: {e}") from e
        except ValueError as e:
            raise RpcError(f"RPC returned invalid JSON for {method}") from e

        if isinstance(result, dict) and result.get("error"):
            error = result["error"]
            if isinstance(error, dict):
                raise RpcError(
                    f"RPC error: {error.get('message', error)}",
                    code=error.get("code"),
                    data=error.get("data"),
                )
            raise RpcError(f"RPC error: {error}")

        return result.get("result") if isinstance(result, dict) else None

    async def get_transaction_receipt(self, chain_id: int, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Return the receipt, or ``None`` while the transaction is not mined."""
        receipt = await self.call(chain_id, "eth_getTransactionReceipt", [tx_hash])
        return receipt or None

    async def get_chain_id(self, chain_id: int) -> Optional[str]:
        """Chain id reported by the node behind ``chain_id``'s endpoint (hex)."""
        return await self.call(chain_id, "eth_chainId", [])


# Singleton instance
_rpc_provider: Optional[RpcProvider] = None


def get_rpc_provider() -> RpcProvider:
    """Get the singleton RPC provider instance."""
    global _rpc_provider
    if _rpc_provider is None:
        _rpc_provider = RpcProvider()
    return _rpc_provider
