"""
Request middleware: request ids, access logging and per-route counters.
"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

from washq.core.logging import get_logger
from washq.core.metrics import http_requests

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _route_label(request: Request) -> str:
    # Templated path keeps machine ids out of metric labels
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Binds a request id (reusing the caller's X-Request-ID when present) into
    structlog's contextvars so coordinator and registry logs for one request
    correlate. Client errors are logged at info, server errors at error.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        started = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
        except Exception:
            http_requests.labels(request.method, _route_label(request), "500").inc()
            logger.exception(
                "request_failed",
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        http_requests.labels(request.method, _route_label(request), str(response.status_code)).inc()
        log = logger.error if response.status_code >= 500 else logger.info
        log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response
