# ─────────────────────────────────────────────────────────────────────────────
# Lesson Routes — read-only catalog (THIN)
# ─────────────────────────────────────────────────────────────────────────────
# Both routes are in the "lessons" cache group (10 min TTL, 50 entries).
# Cache-Control lets browsers hold the list for 5 minutes on top of that.
# ─────────────────────────────────────────────────────────────────────────────

from fastapi import APIRouter, Depends, Request, Response

from kidlearner.dependencies import get_lesson_catalog
from kidlearner.rate_limit import api_rate_limit, limiter
from kidlearner.schemas import Lesson
from kidlearner.services.lessons import LessonCatalog

router = APIRouter()

_BROWSER_CACHE = "public, max-age=300"


@router.get("/api/lessons", response_model=list[Lesson], response_model_by_alias=True)
@limiter.limit(api_rate_limit)
async def list_lessons(
    request: Request,
    response: Response,
    catalog: LessonCatalog = Depends(get_lesson_catalog),
) -> list[Lesson]:
    response.headers["Cache-Control"] = _BROWSER_CACHE
    return catalog.all()


@router.get("/api/lessons/{lesson_id}", response_model=Lesson, response_model_by_alias=True)
@limiter.limit(api_rate_limit)
async def get_lesson(
    request: Request,
    response: Response,
    lesson_id: str,
    catalog: LessonCatalog = Depends(get_lesson_catalog),
) -> Lesson:
    """Single lesson. Unknown ids raise LessonNotFoundError (404)."""
    response.headers["Cache-Control"] = _BROWSER_CACHE
    return catalog.get(lesson_id)
