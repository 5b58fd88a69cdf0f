# ─────────────────────────────────────────────────────────────────────────────
# Custom Exceptions + FastAPI Exception Handlers
# ─────────────────────────────────────────────────────────────────────────────


import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


# ── Exception hierarchy ──────────────────────────────────────────────────────


class KidLearnerError(Exception):
    """Base exception for all KidLearner API errors.

    ``code`` is a stable machine-readable identifier the front-end switches on;
    ``suggestions`` are short user-facing hints.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: str = "INTERNAL_ERROR",
        suggestions: list[str] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.suggestions = suggestions or []
        super().__init__(message)


class LessonNotFoundError(KidLearnerError):
    """Raised when a lesson id is not in the catalog."""

    def __init__(self, lesson_id: str):
        self.lesson_id = lesson_id
        super().__init__("Lesson not found", status_code=404, code="LESSON_NOT_FOUND")


class InvalidAIRequestError(KidLearnerError):
    """Raised when an AI chat / explanation body fails validation."""

    def __init__(self, message: str, code: str, suggestions: list[str] | None = None):
        super().__init__(message, status_code=400, code=code, suggestions=suggestions)


class UpstreamAIError(KidLearnerError):
    """Raised when Groq answers with an error or an unusable body."""

    def __init__(self, message: str, code: str = "API_ERROR", suggestions: list[str] | None = None):
        super().__init__(
            message,
            status_code=502,
            code=code,
            suggestions=suggestions or ["Try again in a moment", "Contact support if issue persists"],
        )


class AITimeoutError(KidLearnerError):
    """Raised when the Groq request exceeds the configured timeout."""

    def __init__(self, timeout_s: float):
        super().__init__(
            f"AI request timed out after {timeout_s}s",
            status_code=408,
            code="REQUEST_TIMEOUT",
            suggestions=["Try again in a moment", "Check your internet connection"],
        )


class AIUnavailableError(KidLearnerError):
    """Raised when Groq cannot be reached at all."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(
            "Unable to connect to AI service",
            status_code=503,
            code="NETWORK_ERROR",
            suggestions=["Check your internet connection", "Try again in a moment"],
        )


class AchievementExistsError(KidLearnerError):
    """Raised when a user unlocks the same achievement type twice."""

    def __init__(self, user_id: str, achievement_type: str):
        super().__init__(
            "Achievement already unlocked",
            status_code=409,
            code="ACHIEVEMENT_EXISTS",
        )
        self.user_id = user_id
        self.achievement_type = achievement_type


class SessionNotFoundError(KidLearnerError):
    """Raised when ending a learning session that was never started."""

    def __init__(self, session_id: str):
        super().__init__(
            f"Session '{session_id}' not found",
            status_code=404,
            code="SESSION_NOT_FOUND",
        )


# ── Handler registration ────────────────────────────────────────────────────


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI app.

    Endpoints raise KidLearnerError subclasses; these handlers catch them
    and return structured JSON -- no inline try/except in endpoints.
    """

    @app.exception_handler(KidLearnerError)
    async def kidlearner_error_handler(request: Request, exc: KidLearnerError) -> JSONResponse:
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "kidlearner_error",
            error=exc.message,
            error_type=type(exc).__name__,
            code=exc.code,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.message,
                "type": type(exc).__name__,
                "code": exc.code,
                "suggestions": exc.suggestions,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        if field:
            message = f"Invalid request: {field}: {first.get('msg', 'invalid value')}"
        else:
            message = "Invalid request body"
        logger.warning("request_validation_failed", path=request.url.path, errors=len(errors))
        return JSONResponse(
            status_code=400,
            content={
                "error": message,
                "type": "ValidationError",
                "code": "VALIDATION_ERROR",
                "suggestions": [],
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_error", error=str(exc), path=request.url.path, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "type": "UnhandledError"},
        )
