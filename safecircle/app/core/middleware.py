"""
Request middleware: request IDs, timing, one log line per API call.

The request ID bound here stays on every log line the call produces, so
an arm, a toggle or a safety-check start can be matched with the
lifecycle lines it causes.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from safecircle.app.core.logging_config import bind_request_id, reset_request_id

logger = logging.getLogger(__name__)

# Polled constantly; not logged
QUIET_PREFIXES = ("/docs", "/redoc", "/openapi", "/health")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Echo or mint X-Request-ID, add X-Process-Time, log the outcome."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        path = request.url.path
        token = bind_request_id(request_id)
        start = time.perf_counter()
        try:
            try:
                response = await call_next(request)
            except Exception:
                logger.exception(
                    "%s %s failed", request.method, path,
                    extra={"endpoint": path, "status_code": 500},
                )
                raise
            duration_ms = (time.perf_counter() - start) * 1000
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{duration_ms:.1f}ms"
            if not path.startswith(QUIET_PREFIXES):
                logger.log(
                    logging.WARNING if response.status_code >= 400 else logging.INFO,
                    "%s %s → %d (%.1fms)",
                    request.method, path, response.status_code, duration_ms,
                    extra={
                        "endpoint": path,
                        "status_code": response.status_code,
                        "duration_ms": round(duration_ms, 1),
                    },
                )
            return response
        finally:
            reset_request_id(token)
