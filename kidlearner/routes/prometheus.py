# ─────────────────────────────────────────────────────────────────────────────
# Prometheus Metrics Endpoint — text exposition format
# ─────────────────────────────────────────────────────────────────────────────
# GET /metrics/prometheus → text/plain Prometheus format
# Bridges ResponseCache.stats() → prometheus-client gauges.
# ─────────────────────────────────────────────────────────────────────────────

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from prometheus_client import CollectorRegistry, Gauge, generate_latest

from kidlearner.cache.response_cache import ResponseCache
from kidlearner.dependencies import get_lesson_catalog, get_response_cache
from kidlearner.services.lessons import LessonCatalog

router = APIRouter()

# ── Prometheus metrics (custom registry to avoid default process metrics) ─────

_registry = CollectorRegistry()

# Mirrors of the ResponseCache counters, refreshed on every scrape.
_cache_hits = Gauge("kidlearner_cache_hits", "Response cache hits", registry=_registry)
_cache_misses = Gauge("kidlearner_cache_misses", "Response cache misses", registry=_registry)
_cache_evictions = Gauge(
    "kidlearner_cache_evictions",
    "Entries removed by LRU, expiry sweep or clear",
    registry=_registry,
)
_cache_entries = Gauge(
    "kidlearner_cache_entries",
    "Live response cache entries",
    ["group"],
    registry=_registry,
)
_lessons_loaded = Gauge("kidlearner_lessons_loaded", "Lessons in the catalog", registry=_registry)


def _sync_metrics(cache: ResponseCache, catalog: LessonCatalog) -> None:
    """Sync ResponseCache / LessonCatalog data into Prometheus gauges."""
    stats = cache.stats()
    _cache_hits.set(stats["hits"])
    _cache_misses.set(stats["misses"])
    _cache_evictions.set(stats["evictions"])
    for group, count in stats["groups"].items():
        _cache_entries.labels(group=group).set(count)
    _lessons_loaded.set(catalog.count)


@router.get("/metrics/prometheus")
async def prometheus_metrics(
    cache: ResponseCache = Depends(get_response_cache),
    catalog: LessonCatalog = Depends(get_lesson_catalog),
) -> Response:
    """Prometheus text exposition format metrics endpoint."""
    _sync_metrics(cache, catalog)
    return Response(
        content=generate_latest(_registry),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
