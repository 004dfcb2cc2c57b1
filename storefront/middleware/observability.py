from __future__ import annotations

import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from storefront.core.logging import get_logger, request_id_var
from storefront.core.metrics import normalize_path, record_request_metrics

REQUEST_ID_HEADER = "x-request-id"


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Records request metrics, tags responses with a request id and logs failures."""

    def __init__(self, app, *, log_4xx: bool = True) -> None:
        super().__init__(app)
        self.logger = get_logger("storefront.requests")
        self.log_4xx = log_4xx

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        try:
            response = await self._observe(request, call_next)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    async def _observe(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration = time.perf_counter() - start
            record_request_metrics(request, 500, duration)
            self.logger.error("Unhandled server error", extra=self._payload(request, 500, duration))
            raise

        duration = time.perf_counter() - start
        status_code = response.status_code
        record_request_metrics(request, status_code, duration)

        if status_code >= 500:
            self.logger.error("Server error response", extra=self._payload(request, status_code, duration))
        elif status_code >= 400 and self.log_4xx:
            self.logger.warning("Client error response", extra=self._payload(request, status_code, duration))

        return response

    @staticmethod
    def _payload(request: Request, status_code: int, duration: float) -> dict[str, Any]:
        return {
            "method": request.method,
            "path": normalize_path(request),
            "status_code": status_code,
            "duration_ms": round(duration * 1000, 3),
        }
