# ─────────────────────────────────────────────────────────────────────────────
# Rate Limiter — shared slowapi instance + JSON 429 handler
# ─────────────────────────────────────────────────────────────────────────────
# Extracted to its own module to avoid circular imports between main.py
# (which imports route modules) and route modules (which need the limiter).
# ─────────────────────────────────────────────────────────────────────────────


import structlog
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from kidlearner.config import get_settings

logger = structlog.get_logger(__name__)

# One bucket per client IP and route, not per concrete URL.
limiter = Limiter(key_func=get_remote_address, key_style="endpoint")

_WINDOW_SECONDS = {"second": 1, "minute": 60, "hour": 3600, "day": 86400}


def api_rate_limit() -> str:
    return get_settings().api_rate_limit


def ai_rate_limit() -> str:
    return get_settings().ai_rate_limit


def _parse_retry_after(rate_limit: str) -> str:
    """Window length in seconds from a slowapi limit string.

    "50/minute" → "60", "100/15 minutes" → "900". Unparseable → "60".
    """
    try:
        _, window = rate_limit.strip().split("/")
        parts = window.strip().split()
        multiplier = int(parts[0]) if len(parts) == 2 else 1
        unit = parts[-1].rstrip("s")
    except (ValueError, AttributeError, IndexError):
        return "60"
    if unit not in _WINDOW_SECONDS:
        return "60"
    return str(multiplier * _WINDOW_SECONDS[unit])


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Structured JSON 429 consistent with KidLearnerError responses."""
    settings = get_settings()
    limit = settings.ai_rate_limit if request.url.path.startswith("/api/groq") else settings.api_rate_limit
    logger.warning(
        "rate_limit_exceeded",
        path=request.url.path,
        method=request.method,
        detail=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={
            "error": f"Rate limit exceeded: {exc.detail}",
            "type": "RateLimitExceeded",
            "code": "RATE_LIMITED",
            "suggestions": ["Wait a moment before trying again"],
        },
        headers={"Retry-After": _parse_retry_after(limit)},
    )
