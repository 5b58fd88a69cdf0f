# ─────────────────────────────────────────────────────────────────────────────
# AI Routes — POST /api/groq (THIN) and Groq connectivity check
# ─────────────────────────────────────────────────────────────────────────────
# "groq" is a bypass group: answers are never served from the response cache.
# ─────────────────────────────────────────────────────────────────────────────

from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from kidlearner.dependencies import get_groq_proxy
from kidlearner.rate_limit import ai_rate_limit, limiter
from kidlearner.schemas import AIResponse, GroqRequest
from kidlearner.services.groq_proxy import GroqProxy

router = APIRouter()


@router.post("/api/groq", response_model=AIResponse, response_model_exclude_none=True)
@limiter.limit(ai_rate_limit)
async def groq_completion(
    request: Request,
    body: GroqRequest,
    groq: GroqProxy = Depends(get_groq_proxy),
) -> dict[str, Any]:
    """Chat or code explanation.

    Validation errors, upstream failures and timeouts are raised by the proxy
    as KidLearnerError subclasses. This endpoint is just wiring.
    """
    return await groq.complete(body)


@router.get("/api/groq/health")
async def groq_health(groq: GroqProxy = Depends(get_groq_proxy)) -> JSONResponse:
    """Check that the configured key can list models. 503 when it cannot."""
    status_code, content = await groq.health()
    return JSONResponse(status_code=status_code, content=content)
