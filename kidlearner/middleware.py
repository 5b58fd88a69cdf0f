# ─────────────────────────────────────────────────────────────────────────────
# Request Middleware — request ID, timing, cache outcome, structured logging
# ─────────────────────────────────────────────────────────────────────────────
# The request id is bound to structlog contextvars for the whole request, so
# cache_hit / cache_stored / ai_request lines logged downstream carry it too.
# ─────────────────────────────────────────────────────────────────────────────


import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_REQUEST_ID_CHARS = 64

# Polled by probes and dashboards; logged at debug only.
_QUIET_PREFIXES = ("/health", "/api/cache/stats", "/metrics")


def _request_id(request: Request) -> str:
    """Reuse a caller-supplied id (e.g. from a proxy) or mint a short one."""
    supplied = request.headers.get(REQUEST_ID_HEADER, "").strip()
    if supplied and len(supplied) <= _MAX_REQUEST_ID_CHARS and supplied.isprintable():
        return supplied
    return str(uuid.uuid4())[:8]


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Adds request ID, logs timing and whether the response cache answered."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _request_id(request)
        request.state.request_id = request_id
        start = time.perf_counter()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response: Response = await call_next(request)
            duration_ms = round((time.perf_counter() - start) * 1000, 1)

            path = request.url.path
            log = logger.debug if path.startswith(_QUIET_PREFIXES) else logger.info
            log(
                "request_completed",
                method=request.method,
                path=path,
                status=response.status_code,
                duration_ms=duration_ms,
                cache=response.headers.get("X-Cache", "BYPASS"),
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration_ms)
        return response
