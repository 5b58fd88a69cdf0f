# ─────────────────────────────────────────────────────────────────────────────
# Groq Proxy — validated passthrough to the Groq chat-completions API
# ─────────────────────────────────────────────────────────────────────────────
# One shared httpx.AsyncClient (created in the lifespan) for all calls.
# No key / demo mode / rejected key → canned fallback answer, HTTP 200.
# Upstream failures map to KidLearnerError subclasses (502 / 503 / 408).
# ─────────────────────────────────────────────────────────────────────────────

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from kidlearner.config import Settings
from kidlearner.exceptions import (
    AITimeoutError,
    AIUnavailableError,
    InvalidAIRequestError,
    UpstreamAIError,
)
from kidlearner.schemas import ChatMessage, GroqRequest, ResponseStyle

logger = structlog.get_logger(__name__)

DEFAULT_MODEL = "llama-3.1-8b-instant"

MODEL_ALIASES: dict[str, str] = {
    "llama3": "llama-3.1-8b-instant",
    "llama3-8b": "llama-3.1-8b-instant",
    "llama3-70b": "llama-3.3-70b-versatile",
    "llama3.1": "llama-3.1-8b-instant",
    "llama3.1-8b": "llama-3.1-8b-instant",
    "llama3.1-70b": "llama-3.3-70b-versatile",
    "llama3.1-405b": "llama-3.3-70b-versatile",  # 405b is not served; closest available
    "mixtral": "mixtral-8x7b-32768",
    "gemma": "gemma-7b-it",
    "auto": "llama-3.1-8b-instant",
}
RECOMMENDED_MODELS = ["llama-3.1-8b-instant", "llama-3.3-70b-versatile"]

SUPPORTED_LANGUAGES = frozenset({"html", "css", "javascript"})
VALID_ROLES = frozenset({"user", "assistant", "system"})

MAX_MESSAGES = 50
MAX_MESSAGE_CHARS = 10_000
MAX_CODE_CHARS = 50_000
MAX_RESPONSE_CHARS = 102_400
TRUNCATED_LENGTH = 100_000

_PLACEHOLDER_KEY = "your_groq_api_key_here"
_MIN_KEY_LENGTH = 10


@dataclass(frozen=True)
class StyleConfig:
    max_tokens: int
    temperature: float
    instruction: str


STYLES: dict[ResponseStyle, StyleConfig] = {
    ResponseStyle.brief: StyleConfig(300, 0.2, "Keep the answer under 150 words with one small example."),
    ResponseStyle.normal: StyleConfig(800, 0.3, "Give a balanced explanation with a code example."),
    ResponseStyle.detailed: StyleConfig(1500, 0.4, "Give a thorough explanation with several examples."),
}

_SYSTEM_PROMPT = "You are a friendly web development teacher for beginners. {instruction}"


# ── Text helpers ─────────────────────────────────────────────────────────────

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F-\x9F]")
_INVISIBLE_CHARS = re.compile("[\u200b-\u200d\ufeff\ufffd]")
_LINE_SEPARATORS = re.compile("[\u2028\u2029]")
_SPACE_RUNS = re.compile(r" {3,}")
_NEWLINE_RUNS = re.compile(r"\n{3,}")


def map_model(model: str | None) -> str:
    """Resolve a short model alias to a Groq model id."""
    if not model:
        return DEFAULT_MODEL
    return MODEL_ALIASES.get(model, model)


def sanitize_string(value: Any, max_length: int) -> str:
    """Drop null bytes and cap length. Non-strings become ''."""
    if not isinstance(value, str):
        return ""
    return value.replace("\x00", "")[:max_length]


def clean_special_characters(text: str) -> str:
    """Strip control / zero-width characters and collapse whitespace runs.

    Newlines, carriage returns and tabs survive; indentation is kept to two
    spaces at most.
    """
    text = _CONTROL_CHARS.sub("", text)
    text = _INVISIBLE_CHARS.sub("", text)
    text = _LINE_SEPARATORS.sub("\n", text)
    text = _SPACE_RUNS.sub("  ", text)
    text = _NEWLINE_RUNS.sub("\n\n", text)
    return text.strip()


def fallback_explanation(is_code_explanation: bool, language: str, style: ResponseStyle) -> str:
    """Canned answer used when no live model is available."""
    if not is_code_explanation:
        return (
            "I'm sorry, but the AI assistant is currently unavailable due to API "
            "configuration. Please check that the Groq API key is configured on the server."
        )
    topic = {
        "html": "HTML describes the structure of a page: headings, paragraphs, links and images.",
        "css": "CSS controls how HTML looks: colors, spacing, fonts and layout.",
        "javascript": "JavaScript makes the page interactive: it reacts to clicks and changes content.",
    }.get(language.lower(), "This code is part of a web page.")
    if style is ResponseStyle.brief:
        return topic
    return (
        f"{topic}\n\nRead the code from top to bottom and try changing one line at a "
        "time in the editor to see what each part does."
    )


# ── Proxy ────────────────────────────────────────────────────────────────────


class GroqProxy:
    """Validates AI requests, forwards them to Groq, normalizes the reply."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self._client = client
        self._settings = settings

    @property
    def _api_key(self) -> str:
        return self._settings.groq_api_key.get_secret_value()

    @property
    def is_configured(self) -> bool:
        key = self._api_key
        return bool(key) and key != _PLACEHOLDER_KEY and len(key) >= _MIN_KEY_LENGTH

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    # ── Chat / explanation ───────────────────────────────────────────────

    async def complete(self, body: GroqRequest) -> dict[str, Any]:
        """Answer a chat or code-explanation request."""
        style = _resolve_style(body.response_style)
        is_explanation = body.is_code_explanation

        if is_explanation:
            code, language = _validate_explanation(body)
            messages = [
                ChatMessage(role="system", content=_SYSTEM_PROMPT.format(instruction=STYLES[style].instruction)),
                ChatMessage(role="user", content=f"Explain this {language.upper()} code:\n\n{code}"),
            ]
            logger.info("ai_request", kind="explanation", language=language, code_chars=len(code))
        else:
            language = ""
            messages = [
                ChatMessage(role="system", content=_SYSTEM_PROMPT.format(instruction=STYLES[style].instruction)),
                *_validate_messages(body.messages),
            ]
            logger.info(
                "ai_request",
                kind="chat",
                messages=len(messages) - 1,
                model=body.model or "default",
                style=style.value,
            )

        if not self.is_configured or self._settings.groq_demo_mode:
            note = "Demo mode enabled via GROQ_DEMO_MODE" if self.is_configured else "No API key configured"
            logger.info("ai_fallback", reason=note)
            return _fallback_body(is_explanation, language, style, note)

        model = map_model(body.model or self._settings.groq_model)
        config = STYLES[style]
        payload = {
            "model": model,
            "messages": [m.model_dump() for m in messages],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }

        data = await self._post_completion(payload)

        error = data.get("error")
        if error:
            error = error if isinstance(error, dict) else {"message": str(error)}
            if error.get("code") == "invalid_api_key":
                logger.warning("ai_fallback", reason="invalid_api_key")
                return _fallback_body(is_explanation, language, style, "Invalid API key - using demo mode")
            raise UpstreamAIError(
                error.get("message") or "AI service error",
                code=error.get("type") or "API_ERROR",
            )

        text = _extract_text(data)
        text = clean_special_characters(text)

        result: dict[str, Any] = {"response": text, "model": model, "usage": data.get("usage")}
        if len(text) > MAX_RESPONSE_CHARS:
            logger.warning("ai_response_truncated", chars=len(text))
            result["response"] = clean_special_characters(
                text[:TRUNCATED_LENGTH] + "\n\n[Response truncated due to size limit]"
            )
            result["truncated"] = True
        return result

    async def _post_completion(self, payload: dict[str, Any]) -> dict[str, Any]:
        timeout = self._settings.groq_timeout_seconds
        try:
            response = await self._client.post(
                f"{self._settings.groq_base_url}/chat/completions",
                json=payload,
                headers=self._headers(),
                timeout=timeout,
            )
        except httpx.TimeoutException:
            logger.warning("ai_request_timeout", timeout_s=timeout)
            raise AITimeoutError(timeout) from None
        except httpx.TransportError as e:
            logger.warning("ai_request_unreachable", error=str(e))
            raise AIUnavailableError(str(e)) from e

        try:
            data = response.json()
        except ValueError:
            raise UpstreamAIError(
                f"AI service returned a non-JSON response ({response.status_code})",
                code="INVALID_RESPONSE_FORMAT",
            ) from None
        if not isinstance(data, dict):
            raise UpstreamAIError("Invalid response format from AI service", code="INVALID_RESPONSE_FORMAT")
        if not response.is_success and not data.get("error"):
            raise UpstreamAIError(f"AI service error ({response.status_code})")
        return data

    # ── Health ───────────────────────────────────────────────────────────

    async def health(self) -> tuple[int, dict[str, Any]]:
        """Probe GET /models. Returns (status_code, body)."""
        if not self._api_key:
            return 503, {
                "status": "unhealthy",
                "service": "not_configured",
                "error": "Groq API key is missing",
                "suggestions": [
                    "Get a Groq API key from https://console.groq.com/",
                    "Set GROQ_API_KEY in the server environment",
                    "Restart the server",
                ],
            }

        try:
            response = await self._client.get(
                f"{self._settings.groq_base_url}/models",
                headers=self._headers(),
                timeout=self._settings.groq_health_timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.warning("groq_health_failed", error=str(e))
            return 503, {
                "status": "unhealthy",
                "service": "error",
                "error": str(e) or type(e).__name__,
                "suggestions": [
                    "Check internet connectivity to Groq",
                    "Visit https://status.groq.com for service status",
                ],
            }

        if not response.is_success:
            if response.status_code == 401:
                message = "Invalid Groq API key. Please verify your key."
            elif response.status_code == 402:
                message = "Groq account needs credits. Visit https://console.groq.com/"
            else:
                message = "Groq API key validation failed"
            logger.warning("groq_health_auth_failed", status=response.status_code)
            return 503, {
                "status": "unhealthy",
                "service": "auth_failed",
                "error": message,
                "suggestions": [
                    "Verify your Groq API key is correct",
                    "Check Groq account status at https://console.groq.com/",
                ],
            }

        try:
            models = response.json().get("data") or []
        except (ValueError, AttributeError):
            models = []
        return 200, {
            "status": "healthy",
            "service": "groq_configured",
            "modelsCount": len(models),
            "recommendedModels": RECOMMENDED_MODELS,
            "modelAliases": MODEL_ALIASES,
        }


# ── Validation helpers ───────────────────────────────────────────────────────


def _resolve_style(value: Any) -> ResponseStyle:
    try:
        return ResponseStyle(sanitize_string(value, 10))
    except ValueError:
        return ResponseStyle.normal


def _validate_explanation(body: GroqRequest) -> tuple[str, str]:
    code = sanitize_string(body.code, MAX_CODE_CHARS)
    language = sanitize_string(body.language, 20).lower()
    if not code or not language:
        raise InvalidAIRequestError(
            "Code and language are required for code explanation",
            code="MISSING_PARAMETERS",
            suggestions=["Provide both code and language parameters"],
        )
    if language not in SUPPORTED_LANGUAGES:
        raise InvalidAIRequestError(
            "Unsupported language. Supported: html, css, javascript",
            code="UNSUPPORTED_LANGUAGE",
            suggestions=["Use one of: html, css, javascript"],
        )
    return code, language


def _validate_messages(messages: Any) -> list[ChatMessage]:
    if not isinstance(messages, list) or not messages:
        raise InvalidAIRequestError(
            "Messages must be a non-empty array",
            code="INVALID_MESSAGES",
            suggestions=["Provide at least one message in the messages array"],
        )
    if len(messages) > MAX_MESSAGES:
        raise InvalidAIRequestError(
            f"Too many messages. Maximum {MAX_MESSAGES} messages allowed.",
            code="TOO_MANY_MESSAGES",
            suggestions=[f"Limit your conversation history to {MAX_MESSAGES} messages or less"],
        )

    cleaned: list[ChatMessage] = []
    for i, message in enumerate(messages):
        if not isinstance(message, dict):
            raise InvalidAIRequestError(
                f"Message at index {i} must be an object",
                code="INVALID_MESSAGE_FORMAT",
                suggestions=["Each message must be an object with role and content properties"],
            )
        if not message.get("role") or not message.get("content"):
            raise InvalidAIRequestError(
                f"Message at index {i} must have role and content",
                code="INVALID_MESSAGE_FORMAT",
                suggestions=["Each message must have both role and content properties"],
            )
        role = sanitize_string(message["role"], 20)
        content = sanitize_string(message["content"], MAX_MESSAGE_CHARS)
        if role not in VALID_ROLES:
            raise InvalidAIRequestError(
                f"Invalid role '{role}' in message {i}. Must be user, assistant, or system",
                code="INVALID_ROLE",
                suggestions=['Use only "user", "assistant", or "system" as message roles'],
            )
        if not content:
            raise InvalidAIRequestError(
                f"Message {i} content cannot be empty",
                code="EMPTY_MESSAGE_CONTENT",
                suggestions=["Provide non-empty content for all messages"],
            )
        cleaned.append(ChatMessage(role=role, content=content))
    return cleaned


def _extract_text(data: dict[str, Any]) -> str:
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise UpstreamAIError("Invalid response format from AI service", code="INVALID_RESPONSE_FORMAT")
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not content:
        raise UpstreamAIError(
            "AI service returned empty response",
            code="EMPTY_RESPONSE",
            suggestions=["Try rephrasing your question", "Try again in a moment"],
        )
    return str(content)


def _fallback_body(
    is_explanation: bool, language: str, style: ResponseStyle, note: str
) -> dict[str, Any]:
    return {
        "response": fallback_explanation(is_explanation, language, style),
        "model": "fallback-explanation",
        "fallback": True,
        "note": note,
    }
