# ─────────────────────────────────────────────────────────────────────────────
# Cache Routes — monitoring and management
# ─────────────────────────────────────────────────────────────────────────────
# Both routes sit in the "cache" group, which the response-cache middleware
# never intercepts: stats are always live and clear always runs.
# ─────────────────────────────────────────────────────────────────────────────

from typing import Any

from fastapi import APIRouter, Depends

from kidlearner.cache.response_cache import ResponseCache
from kidlearner.dependencies import get_response_cache
from kidlearner.schemas import CacheClearResponse

router = APIRouter()


@router.get("/api/cache/stats")
async def cache_stats(cache: ResponseCache = Depends(get_response_cache)) -> dict[str, Any]:
    """Return cache counters, size and per-group policy.

    Response schema:
    {
        "hits": 12,
        "misses": 4,
        "evictions": 0,
        "size": 3,
        "cacheSize": 3,
        "config": {"lessons": {"ttlMillis": 600000, "maxEntries": 50}, ...},
        "uptime": 81.204,
        "groups": {"lessons": 2, "health": 1, "default": 0}
    }
    """
    return cache.stats()


@router.post("/api/cache/clear", response_model=CacheClearResponse)
async def cache_clear(cache: ResponseCache = Depends(get_response_cache)) -> CacheClearResponse:
    """Drop every cached response. Cleared entries count as evictions."""
    previous = cache.clear()
    return CacheClearResponse(
        message="Cache cleared successfully",
        previousSize=previous,
        currentSize=cache.size,
    )
