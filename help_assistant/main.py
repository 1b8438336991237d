"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from help_assistant.api import router as api_router
from help_assistant.core.config import get_settings
from help_assistant.core.embeddings import build_embedding_provider
from help_assistant.core.errors import (
    AssistantError,
    ErrorCode,
    RequestAbandoned,
    create_error,
    to_error_response,
)
from help_assistant.core.llm import build_chat_provider
from help_assistant.core.llm_usage import LLMUsageLogger
from help_assistant.core.logging import get_logger
from help_assistant.core.rate_limiter import RateLimiter
from help_assistant.db.assistant_store import SupabaseAssistantStore
from help_assistant.db.supabase_client import create_supabase_client
from help_assistant.query.pipeline import AssistantPipeline

logger = get_logger(__name__)

# Non-standard status used when the client closed the connection
CLIENT_CLOSED_REQUEST = 499


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build provider clients and the pipeline once per process."""
    settings = get_settings()

    if getattr(app.state, "pipeline", None) is None:
        supabase = create_supabase_client(settings)
        app.state.pipeline = AssistantPipeline(
            settings=settings,
            store=SupabaseAssistantStore(supabase),
            embedding_provider=build_embedding_provider(settings),
            chat_provider=build_chat_provider(settings),
            usage_logger=LLMUsageLogger(supabase),
        )
    if getattr(app.state, "rate_limiter", None) is None:
        app.state.rate_limiter = RateLimiter(
            requests_per_minute=settings.CHAT_RATE_LIMIT_PER_MINUTE,
            burst_size=settings.CHAT_RATE_LIMIT_BURST,
        )

    logger.info(
        f"Help assistant started (env={settings.ASSISTANT_ENV}, "
        f"llm={settings.LLM_PROVIDER}, embeddings={settings.EMBEDDING_PROVIDER})"
    )
    yield

    await app.state.pipeline.wait_for_background_tasks()


app = FastAPI(
    title="Help Assistant",
    description="Retrieval-grounded in-app help assistant service",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(AssistantError)
async def assistant_error_handler(request: Request, exc: AssistantError) -> JSONResponse:
    body, status_code = to_error_response(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code.value} {exc.detail}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code.value} {exc.detail}")
    return JSONResponse(content=body, status_code=status_code, headers=exc.headers or None)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    body, status_code = to_error_response(
        create_error(ErrorCode.INVALID_REQUEST, str(exc.errors()))
    )
    return JSONResponse(content=body, status_code=status_code)


@app.exception_handler(RequestAbandoned)
async def abandoned_handler(request: Request, exc: RequestAbandoned) -> JSONResponse:
    logger.info(f"{request.method} {request.url.path} abandoned: client disconnected")
    return JSONResponse(content={"success": False}, status_code=CLIENT_CLOSED_REQUEST)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    body, status_code = to_error_response(exc)
    return JSONResponse(content=body, status_code=status_code)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
