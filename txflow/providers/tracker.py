"""
HTTP client for the transaction tracking service.

Endpoints:
    POST /tracking/start
    POST /tracking/{id}/hash
    POST /tracking/{id}/status
    GET  /tracking/{id}
"""

from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..core.errors import ServiceUnavailable


class TrackerNotFoundError(ServiceUnavailable):
    """Tracking record does not exist."""

    def __init__(self, tracking_id: str):
        super().__init__(f"Tracking record {tracking_id} not found", status_code=404, provider="tracker")
        self.tracking_id = tracking_id


class TrackerClient:
    """
    Async client for the tracking service.

    Example usage:
        client = TrackerClient(base_url="http://localhost:8000")
        record = await client.start({"domain": "lending", "action": "supply", "chainId": 43114})
        await client.add_hash(record["id"], "0x...", 43114, "supply", "pending")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.tracker_url or "").rstrip("/")
        self.timeout = timeout or settings.request_timeout_seconds
        self._transport = transport

        if not self.base_url:
            raise ServiceUnavailable("TRACKER_URL is required", provider="tracker")

        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        tracking_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.request(method, path, json=json)
            if response.status_code == 404 and tracking_id:
                raise TrackerNotFoundError(tracking_id)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise ServiceUnavailable(
                f"Tracker request failed: {e.response.text}",
                status_code=e.response.status_code,
                provider="tracker",
            ) from e
        except httpx.RequestError as e:
            raise ServiceUnavailable(f"Tracker request failed: {str(e)}", provider="tracker") from e

    async def start(self, context: Dict[str, Any]) -> Dict[str, Any]:
        """Open a tracking record; returns the record (with ``id``)."""
        return await self._request("POST", "/tracking/start", json=context)

    async def add_hash(
        self,
        tracking_id: str,
        tx_hash: str,
        chain_id: int,
        tx_type: str,
        status: str,
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/tracking/{tracking_id}/hash",
            json={"hash": tx_hash, "chainId": chain_id, "type": tx_type, "status": status},
            tracking_id=tracking_id,
        )

    async def set_status(
        self,
        tracking_id: str,
        status: str,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": status}
        if error_code:
            payload["errorCode"] = error_code
        if error_message:
            payload["errorMessage"] = error_message
        return await self._request(
            "POST",
            f"/tracking/{tracking_id}/status",
            json=payload,
            tracking_id=tracking_id,
        )

    async def get(self, tracking_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/tracking/{tracking_id}", tracking_id=tracking_id)
