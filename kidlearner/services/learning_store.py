# ─────────────────────────────────────────────────────────────────────────────
# Learning Store — progress, achievements, sessions and analytics
# ─────────────────────────────────────────────────────────────────────────────
# Process-local and lock-guarded. Records are the pydantic schemas the routes
# return, so there is no separate row → response mapping step.
# ─────────────────────────────────────────────────────────────────────────────

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from kidlearner.exceptions import AchievementExistsError, SessionNotFoundError
from kidlearner.schemas import (
    AchievementCreate,
    AchievementRecord,
    Lesson,
    ProgressRecord,
    ProgressUpdate,
    SessionStart,
)

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class LearningSession:
    id: int
    session_type: str
    start_time: datetime
    user_id: str | None = None
    lesson_id: str | None = None
    end_time: datetime | None = None
    duration: int | None = None
    actions: Any = None


class LearningStore:
    """In-memory store behind the progress / achievement / session routes."""

    def __init__(self, now: Callable[[], datetime] = _utcnow) -> None:
        self._now = now
        self._lock = threading.Lock()
        self._progress: dict[tuple[str | None, str], ProgressRecord] = {}
        self._achievements: list[AchievementRecord] = []
        self._sessions: dict[int, LearningSession] = {}
        self._next_progress_id = 1
        self._next_achievement_id = 1
        self._next_session_id = 1

    # ── Progress ─────────────────────────────────────────────────────────

    def update_progress(self, update: ProgressUpdate) -> ProgressRecord:
        """Insert or replace the record for (user_id, lesson_id)."""
        stamp = self._now().isoformat()
        key = (update.user_id, update.lesson_id)
        with self._lock:
            existing = self._progress.get(key)
            if existing is None:
                record_id = self._next_progress_id
                self._next_progress_id += 1
                created_at = stamp
            else:
                record_id = existing.id
                created_at = existing.created_at
            record = ProgressRecord(
                **update.model_dump(),
                id=record_id,
                last_attempt=stamp,
                created_at=created_at,
                updated_at=stamp,
            )
            self._progress[key] = record

        logger.info(
            "progress_updated",
            user_id=update.user_id,
            lesson_id=update.lesson_id,
            completed=update.completed,
            created=existing is None,
        )
        return record

    def user_progress(self, user_id: str) -> list[ProgressRecord]:
        with self._lock:
            return [r for r in self._progress.values() if r.user_id == user_id]

    # ── Achievements ─────────────────────────────────────────────────────

    def unlock_achievement(self, data: AchievementCreate) -> AchievementRecord:
        """Record an achievement; each type unlocks once per user."""
        with self._lock:
            for existing in self._achievements:
                if (
                    existing.user_id == data.user_id
                    and existing.achievement_type == data.achievement_type
                ):
                    raise AchievementExistsError(data.user_id, data.achievement_type)
            record = AchievementRecord(
                **data.model_dump(),
                id=self._next_achievement_id,
                unlocked_at=self._now().isoformat(),
            )
            self._next_achievement_id += 1
            self._achievements.append(record)

        logger.info("achievement_unlocked", user_id=data.user_id, type=data.achievement_type)
        return record

    def user_achievements(self, user_id: str) -> list[AchievementRecord]:
        """Newest first."""
        with self._lock:
            return [a for a in reversed(self._achievements) if a.user_id == user_id]

    # ── Sessions ─────────────────────────────────────────────────────────

    def start_session(self, data: SessionStart) -> LearningSession:
        with self._lock:
            session = LearningSession(
                id=self._next_session_id,
                session_type=data.session_type,
                start_time=self._now(),
                user_id=data.user_id,
                lesson_id=data.lesson_id,
            )
            self._next_session_id += 1
            self._sessions[session.id] = session
        logger.info("session_started", session_id=session.id, session_type=session.session_type)
        return session

    def end_session(self, session_id: int, actions: Any = None) -> LearningSession:
        """Close a session; duration is whole seconds since start."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(str(session_id))
            session.end_time = self._now()
            session.duration = int((session.end_time - session.start_time).total_seconds())
            session.actions = actions
        logger.info("session_ended", session_id=session_id, duration_s=session.duration)
        return session

    def user_sessions(self, user_id: str, limit: int = 50) -> list[LearningSession]:
        with self._lock:
            sessions = [s for s in self._sessions.values() if s.user_id == user_id]
        sessions.sort(key=lambda s: (s.start_time, s.id), reverse=True)
        return sessions[:limit]

    # ── Analytics ────────────────────────────────────────────────────────

    def lesson_completion_stats(self, lessons: Iterable[Lesson]) -> list[dict[str, Any]]:
        """Per-lesson attempt / completion aggregates across all users.

        Lessons without progress still appear with zero counts and null
        averages.
        """
        with self._lock:
            records = list(self._progress.values())

        stats = []
        for lesson in lessons:
            rows = [r for r in records if r.lesson_id == lesson.id]
            stats.append(
                {
                    "id": lesson.id,
                    "title": lesson.title,
                    "category": lesson.category,
                    "total_attempts": len(rows),
                    "completed_count": sum(1 for r in rows if r.completed),
                    "avg_score": _mean(r.score for r in rows),
                    "avg_time_spent": _mean(r.time_spent for r in rows),
                }
            )
        return stats

    def user_stats(self, user_id: str) -> dict[str, Any]:
        with self._lock:
            progress = [r for r in self._progress.values() if r.user_id == user_id]
            achievements = [a for a in self._achievements if a.user_id == user_id]

        return {
            "lessons_started": len({r.lesson_id for r in progress}),
            "lessons_completed": sum(1 for r in progress if r.completed),
            "avg_score": _mean(r.score for r in progress),
            "total_time_spent": sum(r.time_spent for r in progress),
            "achievements_count": len(achievements),
            "total_points": sum(a.points for a in achievements),
        }


def _mean(values: Iterable[int]) -> float | None:
    values = list(values)
    if not values:
        return None
    return sum(values) / len(values)
