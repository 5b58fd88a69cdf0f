# ─────────────────────────────────────────────────────────────────────────────
# Health Check Routes — liveness, readiness, and API status
# ─────────────────────────────────────────────────────────────────────────────
#   /health        → Liveness probe. "Is the process alive?" Near-zero cost.
#
#   /health/ready  → Readiness probe. "Can it serve traffic?"
#                    Checks lessons loaded + cache sweeper running.
#                    Returns 503 if not ready.
#
#   /api/health    → Status summary for the front-end. Goes through the
#                    response cache ("health" group, 2 min TTL).
# ─────────────────────────────────────────────────────────────────────────────

import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from kidlearner.cache.response_cache import ResponseCache
from kidlearner.dependencies import get_groq_proxy, get_lesson_catalog, get_response_cache
from kidlearner.schemas import ApiHealthResponse, LivenessResponse, ReadinessResponse
from kidlearner.services.groq_proxy import GroqProxy
from kidlearner.services.lessons import LessonCatalog

router = APIRouter()


@router.get("/health", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """Liveness probe — is the process alive?

    Keep it absolutely minimal: no deps, no I/O.
    """
    return LivenessResponse(status="ok")


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness(
    catalog: LessonCatalog = Depends(get_lesson_catalog),
    cache: ResponseCache = Depends(get_response_cache),
) -> JSONResponse:
    """Readiness probe — lessons are loaded and expired entries are being swept."""
    ready = catalog.count > 0 and cache.is_sweeping

    response = ReadinessResponse(
        status="ready" if ready else "not_ready",
        lessons_loaded=catalog.count,
        cache_sweeping=cache.is_sweeping,
    )

    return JSONResponse(
        status_code=200 if ready else 503,
        content=response.model_dump(),
    )


@router.get("/api/health", response_model=ApiHealthResponse)
async def api_health(
    request: Request,
    catalog: LessonCatalog = Depends(get_lesson_catalog),
    cache: ResponseCache = Depends(get_response_cache),
    groq: GroqProxy = Depends(get_groq_proxy),
) -> ApiHealthResponse:
    started_at: float = getattr(request.app.state, "started_at", time.monotonic())
    return ApiHealthResponse(
        status="OK",
        uptime_seconds=int(time.monotonic() - started_at),
        lessons_loaded=catalog.count,
        groq_configured=groq.is_configured,
        cache_size=cache.size,
    )
