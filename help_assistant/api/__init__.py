"""API router for v1 endpoints."""

from fastapi import APIRouter

from help_assistant.api import assistant

router = APIRouter()

# Help assistant chat, memory and cache administration
router.include_router(assistant.router, prefix="/assistant", tags=["assistant"])
