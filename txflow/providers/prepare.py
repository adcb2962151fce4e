"""Async client for the per-domain transaction prepare backends."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..core.errors import RateLimited, ServiceUnavailable, ValidationError, parse_retry_after


logger = logging.getLogger(__name__)


class PrepareClient:
    """
    Calls ``POST {base}/{domain}/prepare/{action}`` and returns the
    ``data`` mapping of unsigned transactions keyed by step role.
    """

    def __init__(
        self,
        *,
        base_urls: Optional[Dict[str, str]] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_urls = {k.lower(): v.rstrip("/") for k, v in (base_urls or {}).items()}
        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": "txflow/0.1",
        }

    def base_url_for(self, domain: str) -> Optional[str]:
        return self._base_urls.get(domain.lower()) or settings.prepare_url_for(domain)

    async def prepare(self, domain: str, action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Request unsigned transactions for ``action``.

        Raises:
            RateLimited: Backend returned 429 (retry-after parsed and clamped)
            ValidationError: Backend rejected the input (400 / 422)
            ServiceUnavailable: Any other failure or a non-success body
        """
        base_url = self.base_url_for(domain)
        if not base_url:
            raise ValidationError(f"Unknown domain: {domain}", field_name="domain")

        path = f"/{domain}/prepare/{action}"
        try:
            async with httpx.AsyncClient(
                base_url=base_url,
                timeout=self.timeout_s,
                transport=self._transport,
            ) as client:
                response = await client.post(path, json=payload, headers=self._headers())
        except httpx.RequestError as exc:
            logger.warning(f"Prepare request failed for {domain}/{action}: {exc}")
            raise ServiceUnavailable(f"Prepare request failed: {exc}", provider=domain) from exc

        if response.status_code == 429:
            retry_after = parse_retry_after(
                response.headers.get("retry-after"),
                default=settings.rate_limit_default_seconds,
                minimum=settings.rate_limit_min_seconds,
                maximum=settings.rate_limit_max_seconds,
            )
            logger.warning(f"Prepare rate limited for {domain}/{action}, retry in {retry_after:g}s")
            raise RateLimited(retry_after_seconds=retry_after, provider=domain)

        body = self._json_or_none(response)

        if response.status_code in (400, 422):
            raise ValidationError(self._error_message(body) or "Invalid request")

        if not response.is_success:
            raise ServiceUnavailable(
                self._error_message(body) or f"Prepare failed with HTTP {response.status_code}",
                status_code=response.status_code,
                provider=domain,
            )

        if not isinstance(body, dict) or body.get("success") is False:
            raise ServiceUnavailable(
                self._error_message(body) or "Prepare returned an unsuccessful response",
                status_code=response.status_code,
                provider=domain,
            )

        data = body.get("data")
        if not isinstance(data, dict):
            raise ServiceUnavailable("Prepare response has no transaction data", provider=domain)
        return data

    @staticmethod
    def _json_or_none(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _error_message(body: Any) -> Optional[str]:
        if not isinstance(body, dict):
            return None
        for key in ("error", "message", "msg"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
        return None
