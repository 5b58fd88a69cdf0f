# ─────────────────────────────────────────────────────────────────────────────
# Lesson Catalog — lessons.json loading with path fallback
# ─────────────────────────────────────────────────────────────────────────────
# Candidates (first one that yields lessons wins):
#   1. settings.lessons_path (deployment override)
#   2. kidlearner/data/lessons.json (bundled)
# If neither loads, a single built-in lesson keeps the UI usable.
# ─────────────────────────────────────────────────────────────────────────────

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import ValidationError

from kidlearner.exceptions import LessonNotFoundError
from kidlearner.schemas import Lesson

logger = structlog.get_logger(__name__)

BUNDLED_LESSONS_PATH = Path(__file__).resolve().parent.parent / "data" / "lessons.json"

_FALLBACK_LESSON = Lesson(
    id="html-intro",
    title="Introduction to HTML",
    category="HTML",
    difficulty="Beginner",
    duration="15 minutes",
    summary="Learn the basics of HTML structure and tags.",
    description=(
        "HTML (HyperText Markup Language) is the foundation of web development. "
        "In this lesson, you'll learn about HTML structure, basic tags, and how "
        "to create your first webpage."
    ),
    learningObjectives=[
        "Understand what HTML is and its purpose",
        "Learn basic HTML structure",
        "Create your first HTML page",
        "Use common HTML tags",
    ],
)


class LessonCatalog:
    """Read-only lesson collection, loaded once at startup."""

    def __init__(self, lessons: list[Lesson], source: str) -> None:
        self._lessons = lessons
        self._by_id = {lesson.id: lesson for lesson in lessons}
        self.source = source

    @classmethod
    def load(cls, override_path: str = "") -> LessonCatalog:
        candidates = [Path(override_path)] if override_path else []
        candidates.append(BUNDLED_LESSONS_PATH)

        for path in candidates:
            lessons = _read_lessons(path)
            if lessons:
                logger.info("lessons_loaded", count=len(lessons), source=str(path))
                return cls(lessons, source=str(path))

        logger.warning("lessons_fallback_used", tried=[str(p) for p in candidates])
        return cls([_FALLBACK_LESSON], source="builtin")

    @property
    def count(self) -> int:
        return len(self._lessons)

    def all(self) -> list[Lesson]:
        return list(self._lessons)

    def get(self, lesson_id: str) -> Lesson:
        try:
            return self._by_id[lesson_id]
        except KeyError:
            raise LessonNotFoundError(lesson_id) from None


def _read_lessons(path: Path) -> list[Lesson]:
    """Parse one lessons.json. Problems are logged, never raised."""
    if not path.is_file():
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("lessons_file_unreadable", path=str(path), error=str(e))
        return []

    if not isinstance(raw, list):
        logger.warning("lessons_file_unreadable", path=str(path), error="expected a JSON array")
        return []

    lessons: list[Lesson] = []
    for item in raw:
        try:
            lessons.append(Lesson.model_validate(item))
        except ValidationError as e:
            logger.warning(
                "lesson_entry_invalid",
                path=str(path),
                lesson_id=item.get("id") if isinstance(item, dict) else None,
                errors=e.error_count(),
            )
    return lessons
