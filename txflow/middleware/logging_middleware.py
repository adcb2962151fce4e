"""
HTTP request logging middleware.

Logs every tracking-service request with method, path, status and duration,
and echoes the request id back in ``x-request-id``.
"""

import re
import time
import uuid
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..logging_config import get_logger

logger = get_logger("http")

REQUEST_ID_HEADER = "x-request-id"
_TRACKING_PATH = re.compile(r"^/tracking/(?!start$)([^/]+)")


def _tracking_id(path: str) -> Optional[str]:
    match = _TRACKING_PATH.match(path)
    return match.group(1) if match else None


def _log_for(status_code: int):
    if status_code >= 500:
        return logger.error
    if status_code >= 400:
        return logger.warning
    return logger.info


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log tracking-service requests, binding request and tracking ids."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            tracking_id=_tracking_id(request.url.path),
        )

        started = time.perf_counter()
        response: Optional[Response] = None
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            status_code = response.status_code if response is not None else 500
            _log_for(status_code)(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
