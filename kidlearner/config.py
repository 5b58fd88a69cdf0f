# ─────────────────────────────────────────────────────────────────────────────
# Settings — Pydantic v2 BaseSettings
# ─────────────────────────────────────────────────────────────────────────────
# Response-cache policy lives in kidlearner.cache.response_cache, not here.
# ─────────────────────────────────────────────────────────────────────────────


from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Server configuration sourced from environment variables.

    Uses pydantic-settings v2 (separate package from pydantic).
    """

    model_config = SettingsConfigDict(env_prefix="", env_file=".env")

    # ── Infrastructure ───────────────────────────────────────────────────────
    port: int = 3000
    lessons_path: str = ""  # Extra lessons.json checked before the bundled one

    # ── Groq ─────────────────────────────────────────────────────────────────
    # SecretStr keeps the key out of logs and repr(). Empty = fallback answers.
    groq_api_key: SecretStr = SecretStr("")
    groq_base_url: str = "https://api.groq.com/openai/v1"
    groq_model: str = "llama-3.1-8b-instant"
    groq_demo_mode: bool = False  # GROQ_DEMO_MODE=true forces fallback answers
    groq_timeout_seconds: float = 30.0
    groq_health_timeout_seconds: float = 10.0

    # ── Security ─────────────────────────────────────────────────────────────
    # Comma-separated origins for CORS (e.g. "https://kidlearner.app,http://localhost:5173").
    # Empty string = deny all cross-origin requests.
    allowed_origins: str = ""

    # slowapi format. Window multipliers are allowed ("100/15 minutes").
    api_rate_limit: str = "100/15 minutes"
    ai_rate_limit: str = "50/15 minutes"

    # ── Logging ──────────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = True


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
