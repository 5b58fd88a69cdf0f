# ─────────────────────────────────────────────────────────────────────────────
# Learning Tests — progress, achievements, sessions, analytics
# ─────────────────────────────────────────────────────────────────────────────

from datetime import UTC, datetime, timedelta

import pytest
from dirty_equals import IsStr

from kidlearner.exceptions import AchievementExistsError, SessionNotFoundError
from kidlearner.schemas import AchievementCreate, ProgressUpdate, SessionStart
from kidlearner.services.learning_store import LearningStore


class SteppingNow:
    """datetime source that moves forward only when told to."""

    def __init__(self) -> None:
        self.value = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += timedelta(seconds=seconds)


# ── Store ────────────────────────────────────────────────────────────────────


class TestLearningStore:
    def test_progress_upsert_keeps_id_and_created_at(self):
        now = SteppingNow()
        store = LearningStore(now=now)
        first = store.update_progress(ProgressUpdate(user_id="u1", lesson_id="html-intro", score=40))
        now.advance(60)
        second = store.update_progress(
            ProgressUpdate(user_id="u1", lesson_id="html-intro", score=90, completed=True, attempts=2)
        )

        assert second.id == first.id
        assert second.created_at == first.created_at
        assert second.updated_at != first.updated_at
        assert store.user_progress("u1") == [second]

    def test_progress_is_per_user(self):
        store = LearningStore()
        store.update_progress(ProgressUpdate(user_id="u1", lesson_id="html-intro"))
        store.update_progress(ProgressUpdate(user_id="u2", lesson_id="html-intro"))
        assert len(store.user_progress("u1")) == 1
        assert store.user_progress("nobody") == []

    def test_duplicate_achievement_rejected(self):
        store = LearningStore()
        data = AchievementCreate(user_id="u1", achievement_type="first_lesson", achievement_name="First!")
        store.unlock_achievement(data)
        with pytest.raises(AchievementExistsError):
            store.unlock_achievement(data)

    def test_achievements_newest_first(self):
        now = SteppingNow()
        store = LearningStore(now=now)
        for kind in ("a", "b", "c"):
            now.advance(1)
            store.unlock_achievement(AchievementCreate(user_id="u1", achievement_type=kind, achievement_name=kind))
        assert [a.achievement_type for a in store.user_achievements("u1")] == ["c", "b", "a"]

    def test_session_duration_in_seconds(self):
        now = SteppingNow()
        store = LearningStore(now=now)
        session = store.start_session(SessionStart(user_id="u1", session_type="lesson", lesson_id="css-intro"))
        now.advance(95.7)
        ended = store.end_session(session.id, actions=[{"type": "click"}])
        assert ended.duration == 95
        assert ended.actions == [{"type": "click"}]

    def test_end_unknown_session(self):
        with pytest.raises(SessionNotFoundError):
            LearningStore().end_session(99)

    def test_user_sessions_newest_first_with_limit(self):
        now = SteppingNow()
        store = LearningStore(now=now)
        ids = []
        for _ in range(3):
            now.advance(1)
            ids.append(store.start_session(SessionStart(user_id="u1", session_type="quiz")).id)
        assert [s.id for s in store.user_sessions("u1", limit=2)] == [ids[2], ids[1]]

    def test_user_stats(self):
        store = LearningStore()
        store.update_progress(ProgressUpdate(user_id="u1", lesson_id="a", score=80, time_spent=100, completed=True))
        store.update_progress(ProgressUpdate(user_id="u1", lesson_id="b", score=40, time_spent=50))
        store.unlock_achievement(
            AchievementCreate(user_id="u1", achievement_type="x", achievement_name="X", points=10)
        )
        store.unlock_achievement(
            AchievementCreate(user_id="u1", achievement_type="y", achievement_name="Y", points=5)
        )

        assert store.user_stats("u1") == {
            "lessons_started": 2,
            "lessons_completed": 1,
            "avg_score": 60.0,
            "total_time_spent": 150,
            "achievements_count": 2,
            "total_points": 15,
        }

    def test_user_stats_for_unknown_user(self):
        assert LearningStore().user_stats("ghost") == {
            "lessons_started": 0,
            "lessons_completed": 0,
            "avg_score": None,
            "total_time_spent": 0,
            "achievements_count": 0,
            "total_points": 0,
        }


# ── Routes ───────────────────────────────────────────────────────────────────


class TestProgressRoutes:
    def test_post_and_read_back(self, client):
        response = client.post(
            "/api/progress",
            json={"user_id": "u1", "lesson_id": "html-intro", "completed": True, "score": 95, "time_spent": 300},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "id": 1}

        records = client.get("/api/progress/u1").json()
        assert records == [
            {
                "id": 1,
                "user_id": "u1",
                "lesson_id": "html-intro",
                "completed": True,
                "score": 95,
                "time_spent": 300,
                "attempts": 1,
                "last_attempt": IsStr,
                "created_at": IsStr,
                "updated_at": IsStr,
            }
        ]

    def test_lesson_id_required(self, client):
        response = client.post("/api/progress", json={"user_id": "u1"})
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_progress_reads_are_never_cached(self, client, response_cache):
        client.get("/api/progress/u1")
        client.post("/api/progress", json={"user_id": "u1", "lesson_id": "css-intro"})
        response = client.get("/api/progress/u1")
        assert len(response.json()) == 1
        assert "X-Cache" not in response.headers
        assert response_cache.size == 0


class TestAchievementRoutes:
    BODY = {"user_id": "u1", "achievement_type": "first_lesson", "achievement_name": "First Steps", "points": 10}

    def test_unlock_then_conflict(self, client):
        first = client.post("/api/achievements", json=self.BODY)
        second = client.post("/api/achievements", json=self.BODY)

        assert first.status_code == 201
        assert first.json() == {"success": True, "id": 1}
        assert second.status_code == 409
        assert second.json()["error"] == "Achievement already unlocked"

    def test_list(self, client):
        client.post("/api/achievements", json=self.BODY)
        achievements = client.get("/api/achievements/u1").json()
        assert [a["achievement_name"] for a in achievements] == ["First Steps"]


class TestSessionRoutes:
    def test_start_and_end(self, client):
        started = client.post("/api/sessions/start", json={"user_id": "u1", "session_type": "lesson"})
        assert started.status_code == 201
        session_id = started.json()["sessionId"]
        assert started.json() == {"success": True, "sessionId": session_id}

        ended = client.post(f"/api/sessions/{session_id}/end", json={"actions": [{"type": "next_slide"}]})
        assert ended.status_code == 200
        assert ended.json() == {"success": True}

    def test_session_type_required(self, client):
        assert client.post("/api/sessions/start", json={"user_id": "u1"}).status_code == 400

    def test_end_unknown_session_is_404(self, client):
        response = client.post("/api/sessions/12345/end", json={})
        assert response.status_code == 404
        assert response.json()["code"] == "SESSION_NOT_FOUND"


class TestAnalyticsRoutes:
    def test_lesson_stats_cover_every_lesson(self, client):
        client.post("/api/progress", json={"user_id": "u1", "lesson_id": "html-intro", "score": 80, "completed": True})
        client.post("/api/progress", json={"user_id": "u2", "lesson_id": "html-intro", "score": 60})

        stats = {row["id"]: row for row in client.get("/api/analytics/lessons").json()}
        assert set(stats) == {"html-intro", "css-intro", "javascript-intro"}
        assert stats["html-intro"] == {
            "id": "html-intro",
            "title": "HTML Introduction",
            "category": "HTML",
            "total_attempts": 2,
            "completed_count": 1,
            "avg_score": 70.0,
            "avg_time_spent": 0.0,
        }
        assert stats["css-intro"]["avg_score"] is None

    def test_analytics_cached_in_default_group(self, client, response_cache):
        client.get("/api/analytics/users/u1")
        assert client.get("/api/analytics/users/u1").headers["X-Cache"] == "HIT"
        assert response_cache.stats()["groups"]["default"] == 1
