# ─────────────────────────────────────────────────────────────────────────────
# Test Fixtures — shared across all tests
# ─────────────────────────────────────────────────────────────────────────────

import os
from collections.abc import Iterator

import httpx
import pytest
from fastapi.testclient import TestClient
from pydantic import SecretStr

from kidlearner.cache.response_cache import ResponseCache
from kidlearner.config import Settings, get_settings
from kidlearner.main import create_app
from kidlearner.rate_limit import limiter
from kidlearner.services.groq_proxy import GroqProxy
from kidlearner.services.learning_store import LearningStore
from kidlearner.services.lessons import LessonCatalog

GROQ_BASE_URL = "https://groq.test/openai/v1"


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> Iterator[None]:
    """slowapi keeps counters in process memory; start every test at zero."""
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def response_cache(clock: FakeClock) -> ResponseCache:
    return ResponseCache(clock=clock)


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing — no Groq key, console logs."""
    return Settings(
        groq_api_key=SecretStr(""),
        groq_base_url=GROQ_BASE_URL,
        log_json=False,
        log_level="DEBUG",
    )


@pytest.fixture
def live_settings() -> Settings:
    """Settings with a plausible key so GroqProxy talks to (mocked) Groq."""
    return Settings(
        groq_api_key=SecretStr("gsk_test_0123456789abcdef"),
        groq_base_url=GROQ_BASE_URL,
        log_json=False,
        log_level="DEBUG",
    )


@pytest.fixture
def lesson_catalog() -> LessonCatalog:
    return LessonCatalog.load()


@pytest.fixture
def learning_store() -> LearningStore:
    return LearningStore()


@pytest.fixture
def client(
    test_settings: Settings,
    response_cache: ResponseCache,
    lesson_catalog: LessonCatalog,
    learning_store: LearningStore,
) -> TestClient:
    """FastAPI TestClient with test collaborators on app.state.

    The lifespan does not run (no ``with`` block), so nothing is started in
    the background; every collaborator is set explicitly below.
    """
    get_settings.cache_clear()

    env_overrides = {
        "LOG_JSON": "false",
        "LOG_LEVEL": "DEBUG",
        "ALLOWED_ORIGINS": "*",  # Tests need permissive CORS (prod defaults to deny-all)
    }
    for k, v in env_overrides.items():
        os.environ[k] = v

    try:
        app = create_app()
        client = TestClient(app)

        app.state.settings = test_settings
        app.state.response_cache = response_cache
        app.state.lesson_catalog = lesson_catalog
        app.state.learning_store = learning_store
        app.state.groq_proxy = GroqProxy(httpx.AsyncClient(), test_settings)

        return client
    finally:
        for k in env_overrides:
            os.environ.pop(k, None)
        get_settings.cache_clear()


@pytest.fixture
def live_client(client: TestClient, live_settings: Settings) -> TestClient:
    """Same app, but the Groq proxy has a key configured."""
    client.app.state.groq_proxy = GroqProxy(httpx.AsyncClient(), live_settings)  # type: ignore[attr-defined]
    return client


@pytest.fixture
def lifespan_client() -> Iterator[TestClient]:
    """TestClient with the real lifespan: real cache, sweeper running."""
    get_settings.cache_clear()
    os.environ["LOG_JSON"] = "false"
    try:
        with TestClient(create_app()) as client:
            yield client
    finally:
        os.environ.pop("LOG_JSON", None)
        get_settings.cache_clear()
