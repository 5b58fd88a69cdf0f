# ─────────────────────────────────────────────────────────────────────────────
# Health Endpoint Tests — liveness, readiness, API status, cache routes
# ─────────────────────────────────────────────────────────────────────────────
# Demonstrates: dirty-equals (declarative assertions)
# ─────────────────────────────────────────────────────────────────────────────

from dirty_equals import IsInstance, IsNonNegative, IsStr


class TestLivenessProbe:
    """GET /health — near-zero cost, always 200."""

    def test_returns_200(self, client):
        response = client.get("/health")
        assert response.status_code == 200

    def test_minimal_body(self, client):
        """Liveness should return only a status field — nothing heavy."""
        data = client.get("/health").json()
        assert data == {"status": "ok"}

    def test_never_cached(self, client, response_cache):
        client.get("/health")
        assert "X-Cache" not in client.get("/health").headers
        assert response_cache.size == 0


class TestReadinessProbe:
    """GET /health/ready — lessons loaded + cache sweeper running."""

    def test_not_ready_without_sweeper(self, client):
        """The plain client skips the lifespan, so no sweeper is running."""
        response = client.get("/health/ready")
        assert response.status_code == 503
        assert response.json() == {
            "status": "not_ready",
            "lessons_loaded": 3,
            "cache_sweeping": False,
        }

    def test_ready_with_lifespan(self, lifespan_client):
        response = lifespan_client.get("/health/ready")
        assert response.status_code == 200
        assert response.json() == {
            "status": IsStr(regex=r"ready"),
            "lessons_loaded": IsInstance(int) & IsNonNegative,
            "cache_sweeping": True,
        }


class TestApiHealth:
    """GET /api/health — status summary, cached in the health group."""

    def test_response_shape(self, client):
        data = client.get("/api/health").json()
        assert data == {
            "status": "OK",
            "uptime_seconds": IsNonNegative,
            "lessons_loaded": 3,
            "groq_configured": False,
            "cache_size": 0,
        }

    def test_groq_configured_with_key(self, live_client):
        assert live_client.get("/api/health").json()["groq_configured"] is True

    def test_cached_under_health_group(self, client, response_cache, clock):
        client.get("/api/health")
        assert client.get("/api/health").headers["X-Cache"] == "HIT"
        assert response_cache.stats()["groups"]["health"] == 1

        clock.advance(120)
        assert client.get("/api/health").headers["X-Cache"] == "MISS"


class TestCacheRoutes:
    """GET /api/cache/stats and POST /api/cache/clear."""

    def test_stats_shape(self, client):
        data = client.get("/api/cache/stats").json()
        assert data == {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
            "size": 0,
            "cacheSize": 0,
            "config": {
                "lessons": {"ttlMillis": 600000, "maxEntries": 50},
                "health": {"ttlMillis": 120000, "maxEntries": 10},
                "default": {"ttlMillis": 300000, "maxEntries": 100},
            },
            "uptime": IsNonNegative,
            "groups": IsInstance(dict),
        }

    def test_clear_twice(self, client):
        client.get("/api/lessons")
        client.get("/api/lessons/html-intro")

        first = client.post("/api/cache/clear")
        second = client.post("/api/cache/clear")

        assert first.status_code == second.status_code == 200
        assert first.json() == {
            "message": "Cache cleared successfully",
            "previousSize": 2,
            "currentSize": 0,
        }
        assert second.json()["previousSize"] == 0
        assert second.json()["currentSize"] == 0

    def test_clear_adds_to_evictions(self, client):
        client.get("/api/lessons")
        client.post("/api/cache/clear")
        assert client.get("/api/cache/stats").json()["evictions"] == 1


class TestPrometheus:
    def test_exposes_cache_gauges(self, client):
        client.get("/api/lessons")
        client.get("/api/lessons")
        response = client.get("/metrics/prometheus")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        body = response.text
        assert "kidlearner_cache_hits 1.0" in body
        assert "kidlearner_cache_misses 1.0" in body
        assert 'kidlearner_cache_entries{group="lessons"} 1.0' in body
        assert "kidlearner_lessons_loaded 3.0" in body
