# FastAPI application factory with lifespan management.
# Entrypoint: uvicorn kidlearner.main:create_app --factory --host 0.0.0.0 --port 3000

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from kidlearner.cache.middleware import ResponseCacheMiddleware
from kidlearner.cache.response_cache import ResponseCache
from kidlearner.config import get_settings
from kidlearner.exceptions import register_exception_handlers
from kidlearner.logging_config import configure_logging
from kidlearner.middleware import RequestContextMiddleware
from kidlearner.rate_limit import limiter, rate_limit_exceeded_handler
from kidlearner.routes import cache as cache_routes
from kidlearner.routes import groq, health, learning, lessons
from kidlearner.routes import prometheus as prometheus_routes
from kidlearner.services.groq_proxy import GroqProxy
from kidlearner.services.learning_store import LearningStore
from kidlearner.services.lessons import LessonCatalog

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup/shutdown: build collaborators, run the cache sweeper."""
    settings = get_settings()

    cache = ResponseCache()
    catalog = LessonCatalog.load(settings.lessons_path)
    http_client = httpx.AsyncClient()

    app.state.settings = settings
    app.state.started_at = time.monotonic()
    app.state.response_cache = cache
    app.state.lesson_catalog = catalog
    app.state.learning_store = LearningStore()
    app.state.groq_proxy = GroqProxy(http_client, settings)

    await cache.start()
    logger.info(
        "startup_complete",
        lessons=catalog.count,
        lessons_source=catalog.source,
        groq_configured=app.state.groq_proxy.is_configured,
        demo_mode=settings.groq_demo_mode,
    )

    try:
        yield
    finally:
        await cache.stop()
        await http_client.aclose()
        logger.info("shutdown_complete")


def _parse_origins(allowed_origins: str) -> list[str]:
    """Parse comma-separated CORS origins. Empty string → deny all."""
    if not allowed_origins.strip():
        logger.warning(
            "cors_no_origins_configured",
            hint="Set ALLOWED_ORIGINS env var. Cross-origin requests will be rejected.",
        )
        return []
    return [origin.strip() for origin in allowed_origins.split(",") if origin.strip()]


def create_app() -> FastAPI:
    """Application factory. Invoked by: uvicorn kidlearner.main:create_app --factory"""
    settings = get_settings()
    configure_logging(log_level=settings.log_level, json_output=settings.log_json)

    app = FastAPI(
        title="KidLearner",
        description="Lessons, AI tutor proxy and progress tracking with an in-process response cache",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)  # type: ignore[arg-type]

    # Middleware order (Starlette applies in reverse): CORS → RequestContext → ResponseCache
    app.add_middleware(ResponseCacheMiddleware)
    app.add_middleware(RequestContextMiddleware)

    origins = _parse_origins(settings.allowed_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        expose_headers=["X-Cache", "X-Request-ID"],
    )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["health"])
    app.include_router(lessons.router, tags=["lessons"])
    app.include_router(groq.router, tags=["ai"])
    app.include_router(learning.router, tags=["learning"])
    app.include_router(cache_routes.router, tags=["cache"])
    app.include_router(prometheus_routes.router, tags=["prometheus"])

    return app
