# ─────────────────────────────────────────────────────────────────────────────
# Dependency Injection — FastAPI Depends() providers
# ─────────────────────────────────────────────────────────────────────────────
# State flows: lifespan creates → app.state stores → Depends() injects.
# No global variables. Every dependency is explicit in endpoint signatures.
# ─────────────────────────────────────────────────────────────────────────────


from fastapi import Request

from kidlearner.cache.response_cache import ResponseCache
from kidlearner.services.groq_proxy import GroqProxy
from kidlearner.services.learning_store import LearningStore
from kidlearner.services.lessons import LessonCatalog


def get_response_cache(request: Request) -> ResponseCache:
    """Inject ResponseCache into endpoints via Depends()."""
    return request.app.state.response_cache  # type: ignore[no-any-return]


def get_lesson_catalog(request: Request) -> LessonCatalog:
    """Inject LessonCatalog into endpoints via Depends()."""
    return request.app.state.lesson_catalog  # type: ignore[no-any-return]


def get_learning_store(request: Request) -> LearningStore:
    return request.app.state.learning_store  # type: ignore[no-any-return]


def get_groq_proxy(request: Request) -> GroqProxy:
    return request.app.state.groq_proxy  # type: ignore[no-any-return]
