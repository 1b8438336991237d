"""API endpoints for the help assistant."""

import secrets
from typing import Any

from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import Field

from help_assistant.core.config import Settings, get_settings
from help_assistant.core.errors import ErrorCode, create_error
from help_assistant.core.logging import get_logger
from help_assistant.core.rate_limiter import RateLimiter
from help_assistant.core.schemas_assistant import AssistantQuery, CamelModel, UIContext
from help_assistant.query.pipeline import AssistantPipeline

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Request bodies
# =============================================================================


class ChatRequest(CamelModel):
    """Chat body; the user id comes from the X-User-Id header."""

    question: str = ""
    session_id: str = Field(..., min_length=1)
    ui_context: UIContext | None = None


class InvalidateCacheRequest(CamelModel):
    module: str = Field(..., min_length=1)


# =============================================================================
# Dependencies
# =============================================================================


def get_pipeline(request: Request) -> AssistantPipeline:
    return request.app.state.pipeline


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def require_user(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity, issued upstream by the host application."""
    if not x_user_id or not x_user_id.strip():
        raise create_error(ErrorCode.AUTH_REQUIRED, "Missing X-User-Id header")
    return x_user_id.strip()


def require_admin(
    x_admin_key: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject unless X-Admin-Key matches ADMIN_API_KEY (always rejects when unset)."""
    expected = settings.ADMIN_API_KEY
    if not expected or not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise create_error(ErrorCode.ADMIN_REQUIRED, "Invalid or missing admin key")


# =============================================================================
# Chat
# =============================================================================


@router.post("/chat")
async def chat(
    body: ChatRequest,
    request: Request,
    user_id: str = Depends(require_user),
    pipeline: AssistantPipeline = Depends(get_pipeline),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> dict[str, Any]:
    """
    Answer a question about the application.

    Returns:
        {"success": true, "data": {answer, sources, confidence, cached, modulesUsed}}
    """
    rate_limiter.check_limit(user_id)

    query = AssistantQuery(
        question=body.question,
        session_id=body.session_id,
        user_id=user_id,
        ui_context=body.ui_context,
    )
    result = await pipeline.process(query, is_disconnected=request.is_disconnected)

    return {"success": True, "data": result.model_dump(by_alias=True)}


@router.delete("/memory")
async def clear_memory(
    session_id: str | None = Query(default=None, alias="sessionId"),
    user_id: str = Depends(require_user),
    pipeline: AssistantPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """Clear conversation memory for one session."""
    if not session_id:
        raise create_error(ErrorCode.INVALID_REQUEST, "Missing sessionId")

    await pipeline.clear_memory(session_id)
    logger.info(f"User {user_id} cleared memory for session {session_id}")
    return {"success": True}


# =============================================================================
# Admin
# =============================================================================


@router.post("/cache/invalidate", dependencies=[Depends(require_admin)])
async def invalidate_cache(
    body: InvalidateCacheRequest,
    pipeline: AssistantPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """Drop cached answers that used a module, after its docs changed."""
    deleted = await pipeline.invalidate_cache(body.module)
    return {"success": True, "data": {"entriesDeleted": deleted}}


@router.delete("/cache", dependencies=[Depends(require_admin)])
async def clear_cache(pipeline: AssistantPipeline = Depends(get_pipeline)) -> dict[str, Any]:
    deleted = await pipeline.clear_cache()
    return {"success": True, "data": {"entriesDeleted": deleted}}


@router.get("/status", dependencies=[Depends(require_admin)])
async def status(pipeline: AssistantPipeline = Depends(get_pipeline)) -> dict[str, Any]:
    return {"success": True, "data": await pipeline.get_status()}
