# ─────────────────────────────────────────────────────────────────────────────
# Pydantic v2 Request / Response Schemas
# ─────────────────────────────────────────────────────────────────────────────
# Field names follow the JSON the browser client already sends and reads
# (camelCase for lessons and AI replies, snake_case for progress records).
# ─────────────────────────────────────────────────────────────────────────────


from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ResponseStyle(StrEnum):
    """Length / depth of an AI answer."""

    brief = "brief"
    normal = "normal"
    detailed = "detailed"


# ── Lessons ──────────────────────────────────────────────────────────────────


class Lesson(BaseModel):
    """One lesson as stored in lessons.json.

    Unknown keys (exercise, content, ...) are kept and returned as-is.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., min_length=1)
    title: str
    category: str
    difficulty: str
    duration: str | None = None
    summary: str | None = None
    description: str | None = None
    slides: list[dict[str, Any]] = Field(default_factory=list)
    learning_objectives: list[str] = Field(default_factory=list, alias="learningObjectives")
    next_lesson: str | None = Field(None, alias="nextLesson")


# ── AI proxy ─────────────────────────────────────────────────────────────────


class GroqRequest(BaseModel):
    """Body of POST /api/groq: either a chat or a code explanation.

    Fields are untyped: GroqProxy validates them and reports the exact
    problem with an error code the front-end understands.
    """

    model_config = ConfigDict(populate_by_name=True)

    messages: Any = None
    model: str | None = None
    code: Any = None
    language: Any = None
    response_style: Any = Field("normal", alias="responseStyle")

    @property
    def is_code_explanation(self) -> bool:
        return "code" in self.model_fields_set and "language" in self.model_fields_set


class ChatMessage(BaseModel):
    role: str
    content: str


class AIResponse(BaseModel):
    """Reply from POST /api/groq (live or fallback)."""

    response: str
    model: str
    usage: dict[str, Any] | None = None
    truncated: bool | None = None
    fallback: bool | None = None
    note: str | None = None


# ── Learning progress ────────────────────────────────────────────────────────


class ProgressUpdate(BaseModel):
    user_id: str | None = None
    lesson_id: str = Field(..., min_length=1)
    completed: bool = False
    score: int = Field(0, ge=0)
    time_spent: int = Field(0, ge=0, description="Seconds")
    attempts: int = Field(1, ge=0)


class ProgressRecord(ProgressUpdate):
    id: int
    last_attempt: str
    created_at: str
    updated_at: str


class AchievementCreate(BaseModel):
    user_id: str = Field(..., min_length=1)
    achievement_type: str = Field(..., min_length=1)
    achievement_name: str = Field(..., min_length=1)
    description: str | None = None
    points: int = Field(0, ge=0)


class AchievementRecord(AchievementCreate):
    id: int
    unlocked_at: str


class SessionStart(BaseModel):
    user_id: str | None = None
    session_type: str = Field(..., min_length=1, description="'lesson', 'quiz', 'practice'")
    lesson_id: str | None = None


class SessionEnd(BaseModel):
    actions: list[Any] | dict[str, Any] | None = None


class SuccessResponse(BaseModel):
    success: bool = True
    id: int | None = None
    sessionId: int | None = None  # noqa: N815 (client field name)


# ── Health ───────────────────────────────────────────────────────────────────


class LivenessResponse(BaseModel):
    """Liveness probe — minimal, near-zero cost."""

    status: str = "ok"


class ReadinessResponse(BaseModel):
    """Readiness probe — lessons loaded and cache sweeper alive."""

    status: str  # "ready" or "not_ready"
    lessons_loaded: int
    cache_sweeping: bool


class ApiHealthResponse(BaseModel):
    status: str
    uptime_seconds: int
    lessons_loaded: int
    groq_configured: bool
    cache_size: int


# ── Cache ────────────────────────────────────────────────────────────────────


class CacheClearResponse(BaseModel):
    message: str
    previousSize: int  # noqa: N815
    currentSize: int  # noqa: N815
