# ─────────────────────────────────────────────────────────────────────────────
# Lesson Tests — catalog loading and /api/lessons routes
# ─────────────────────────────────────────────────────────────────────────────

import json

import pytest
from dirty_equals import IsInstance, IsStr

from kidlearner.exceptions import LessonNotFoundError
from kidlearner.services.lessons import BUNDLED_LESSONS_PATH, LessonCatalog


class TestLessonCatalog:
    def test_loads_bundled_lessons(self):
        catalog = LessonCatalog.load()
        assert catalog.source == str(BUNDLED_LESSONS_PATH)
        assert [lesson.id for lesson in catalog.all()] == ["html-intro", "css-intro", "javascript-intro"]

    def test_override_path_wins(self, tmp_path):
        path = tmp_path / "lessons.json"
        path.write_text(
            json.dumps([{"id": "py-1", "title": "Python", "category": "Python", "difficulty": "Beginner"}])
        )
        catalog = LessonCatalog.load(str(path))
        assert catalog.count == 1
        assert catalog.source == str(path)

    def test_unreadable_override_falls_back_to_bundled(self, tmp_path):
        path = tmp_path / "lessons.json"
        path.write_text("{not json")
        catalog = LessonCatalog.load(str(path))
        assert catalog.source == str(BUNDLED_LESSONS_PATH)

    def test_invalid_entries_are_skipped(self, tmp_path):
        path = tmp_path / "lessons.json"
        path.write_text(
            json.dumps(
                [
                    {"id": "ok", "title": "OK", "category": "HTML", "difficulty": "Beginner"},
                    {"title": "no id"},
                    "not an object",
                ]
            )
        )
        catalog = LessonCatalog.load(str(path))
        assert [lesson.id for lesson in catalog.all()] == ["ok"]

    def test_builtin_fallback_when_nothing_loads(self, tmp_path, monkeypatch):
        monkeypatch.setattr("kidlearner.services.lessons.BUNDLED_LESSONS_PATH", tmp_path / "absent.json")
        catalog = LessonCatalog.load(str(tmp_path / "also-absent.json"))
        assert catalog.source == "builtin"
        assert catalog.get("html-intro").title == "Introduction to HTML"

    def test_unknown_id_raises(self):
        with pytest.raises(LessonNotFoundError):
            LessonCatalog.load().get("nope")

    def test_extra_fields_are_kept(self):
        lesson = LessonCatalog.load().get("javascript-intro")
        dumped = lesson.model_dump(by_alias=True)
        assert "exercise" in dumped
        assert dumped["nextLesson"] is None


class TestLessonRoutes:
    def test_list(self, client):
        response = client.get("/api/lessons")
        assert response.status_code == 200
        assert response.headers["Cache-Control"] == "public, max-age=300"
        lessons = response.json()
        assert len(lessons) == 3
        assert lessons[0] == {
            "id": "html-intro",
            "title": IsStr,
            "category": "HTML",
            "difficulty": IsStr,
            "duration": IsStr,
            "summary": IsStr,
            "description": IsStr,
            "slides": IsInstance(list),
            "learningObjectives": IsInstance(list),
            "nextLesson": "css-intro",
        }

    def test_single(self, client):
        response = client.get("/api/lessons/css-intro")
        assert response.status_code == 200
        assert response.json()["id"] == "css-intro"

    def test_unknown_lesson_is_404(self, client, response_cache):
        response = client.get("/api/lessons/does-not-exist")
        assert response.status_code == 404
        assert response.json() == {
            "error": "Lesson not found",
            "type": "LessonNotFoundError",
            "code": "LESSON_NOT_FOUND",
            "suggestions": [],
        }
        assert response_cache.size == 0

    def test_single_lesson_cached_in_lessons_group(self, client, response_cache):
        client.get("/api/lessons/html-intro")
        second = client.get("/api/lessons/html-intro")
        assert second.headers["X-Cache"] == "HIT"
        assert response_cache.stats()["groups"]["lessons"] == 1
