# ─────────────────────────────────────────────────────────────────────────────
# Response Cache Middleware — serves cached GET /api/* JSON, captures misses
# ─────────────────────────────────────────────────────────────────────────────
# Hit:  cached payload and handler headers are replayed, the handler is skipped.
# Miss: handler runs; a 2xx JSON body is stored before it goes to the client.
# Non-GET requests and bypass groups never touch the cache or its counters.
# ─────────────────────────────────────────────────────────────────────────────

import json

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from kidlearner.cache.response_cache import ResponseCache

logger = structlog.get_logger(__name__)

_API_PREFIX = "/api/"

# Route groups that must always reach their handler: operational cache routes,
# the AI proxy, and per-user data that changes on every POST.
_BYPASS_GROUPS: frozenset[str] = frozenset(
    {
        "cache",
        "groq",
        "progress",
        "achievements",
        "sessions",
    }
)


def is_cacheable_request(method: str, path: str) -> bool:
    """Whether a request goes through the response cache at all."""
    if method != "GET" or not path.startswith(_API_PREFIX):
        return False
    group = path[len(_API_PREFIX) :].split("/", 1)[0]
    return bool(group) and group not in _BYPASS_GROUPS


# Recomputed for the replayed body, or hop-by-hop.
_UNSTORED_HEADERS: frozenset[str] = frozenset(
    {"content-length", "content-type", "transfer-encoding", "connection", "set-cookie", "x-cache"}
)


def _stored_headers(response: Response) -> dict[str, str]:
    return {name: value for name, value in response.headers.items() if name not in _UNSTORED_HEADERS}


def _is_json(response: Response) -> bool:
    return response.headers.get("content-type", "").startswith("application/json")


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    """Intercepts GET /api/* and answers from ResponseCache when fresh.

    The cache is read from ``request.app.state.response_cache`` at request
    time (the lifespan creates it after middleware is installed). Without a
    cache on app.state every request passes straight through.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if not is_cacheable_request(request.method, path):
            return await call_next(request)

        cache: ResponseCache | None = getattr(request.app.state, "response_cache", None)
        if cache is None:
            return await call_next(request)

        key = ResponseCache.make_key(request.method, path, request.url.query)
        group = cache.group_for_path(path)

        entry = cache.lookup(key, group)
        if entry is not None:
            logger.debug("cache_hit", key=key, group=entry.group)
            return JSONResponse(
                content=entry.payload,
                status_code=entry.status_code,
                headers={**entry.headers, "X-Cache": "HIT"},
            )

        # Handler exceptions propagate from call_next untouched.
        response = await call_next(request)

        if not (200 <= response.status_code < 300 and _is_json(response)):
            response.headers["X-Cache"] = "MISS"
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])  # type: ignore[attr-defined]
        try:
            payload = json.loads(body)
        except ValueError:
            logger.warning("cache_capture_failed", key=key, reason="invalid_json_body")
        else:
            cache.put(
                key,
                group,
                payload,
                status_code=response.status_code,
                headers=_stored_headers(response),
            )

        passthrough = Response(
            content=body,
            status_code=response.status_code,
            headers=response.headers,
        )
        passthrough.headers["X-Cache"] = "MISS"
        return passthrough
