"""Health check endpoint."""

from fastapi import APIRouter

from memo_service.api.response import success_response
from memo_service.llm import get_client

router = APIRouter(tags=["System"])


@router.get("/health")
async def health_check() -> dict:
    """Return system health status and whether the AI backend is configured."""
    return success_response({
        "status": "ok",
        "aiConfigured": get_client().is_configured(),
    })
