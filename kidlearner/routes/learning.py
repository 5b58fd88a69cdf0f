# ─────────────────────────────────────────────────────────────────────────────
# Learning Routes — progress, achievements, sessions, analytics (THIN)
# ─────────────────────────────────────────────────────────────────────────────
# progress / achievements / sessions are bypass groups for the response
# cache. Analytics falls into the "default" group (5 min TTL).
# ─────────────────────────────────────────────────────────────────────────────

from typing import Any

from fastapi import APIRouter, Depends, status

from kidlearner.dependencies import get_learning_store, get_lesson_catalog
from kidlearner.schemas import (
    AchievementCreate,
    AchievementRecord,
    ProgressRecord,
    ProgressUpdate,
    SessionEnd,
    SessionStart,
    SuccessResponse,
)
from kidlearner.services.learning_store import LearningStore
from kidlearner.services.lessons import LessonCatalog

router = APIRouter()


# ── Progress ─────────────────────────────────────────────────────────────────


@router.post("/api/progress", response_model=SuccessResponse, response_model_exclude_none=True)
async def update_progress(
    body: ProgressUpdate,
    store: LearningStore = Depends(get_learning_store),
) -> SuccessResponse:
    record = store.update_progress(body)
    return SuccessResponse(id=record.id)


@router.get("/api/progress/{user_id}", response_model=list[ProgressRecord])
async def user_progress(
    user_id: str,
    store: LearningStore = Depends(get_learning_store),
) -> list[ProgressRecord]:
    return store.user_progress(user_id)


# ── Achievements ─────────────────────────────────────────────────────────────


@router.post(
    "/api/achievements",
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def unlock_achievement(
    body: AchievementCreate,
    store: LearningStore = Depends(get_learning_store),
) -> SuccessResponse:
    """Unlock once per (user, type); repeats raise AchievementExistsError (409)."""
    record = store.unlock_achievement(body)
    return SuccessResponse(id=record.id)


@router.get("/api/achievements/{user_id}", response_model=list[AchievementRecord])
async def user_achievements(
    user_id: str,
    store: LearningStore = Depends(get_learning_store),
) -> list[AchievementRecord]:
    return store.user_achievements(user_id)


# ── Sessions ─────────────────────────────────────────────────────────────────


@router.post(
    "/api/sessions/start",
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def start_session(
    body: SessionStart,
    store: LearningStore = Depends(get_learning_store),
) -> SuccessResponse:
    session = store.start_session(body)
    return SuccessResponse(sessionId=session.id)


@router.post("/api/sessions/{session_id}/end", response_model=SuccessResponse, response_model_exclude_none=True)
async def end_session(
    session_id: int,
    body: SessionEnd | None = None,
    store: LearningStore = Depends(get_learning_store),
) -> SuccessResponse:
    store.end_session(session_id, body.actions if body else None)
    return SuccessResponse()


# ── Analytics ────────────────────────────────────────────────────────────────


@router.get("/api/analytics/lessons")
async def lesson_analytics(
    store: LearningStore = Depends(get_learning_store),
    catalog: LessonCatalog = Depends(get_lesson_catalog),
) -> list[dict[str, Any]]:
    return store.lesson_completion_stats(catalog.all())


@router.get("/api/analytics/users/{user_id}")
async def user_analytics(
    user_id: str,
    store: LearningStore = Depends(get_learning_store),
) -> dict[str, Any]:
    return store.user_stats(user_id)
