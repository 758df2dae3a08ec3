"""Memo generation endpoints.

Async job-based API:
- POST /memo/generate: Start generation (returns job_id)
- GET /memo/status/{job_id}: Poll generation progress

All responses use the { data, error } envelope pattern.
"""

import logging

from fastapi import APIRouter, Depends

from memo_service.api.auth import get_caller_id
from memo_service.api.exceptions import BackendMisconfiguredError, ValidationError
from memo_service.api.response import success_response
from memo_service.llm import get_client
from memo_service.models.api_responses import MemoGenerateRequest
from memo_service.services.company_service import get_owned_company
from memo_service.services.memo_job_service import get_memo_job_status, start_memo_generation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/memo", tags=["Memo"])


def require_ai_configured() -> None:
    """Reject requests that would need the AI service when it has no credentials."""
    if not get_client().is_configured():
        raise BackendMisconfiguredError("AI service API key")


@router.post("/generate")
async def generate_memo(
    request: MemoGenerateRequest,
    caller_id: str = Depends(get_caller_id),
) -> dict:
    """Start async memo generation.

    Creates a background job and returns immediately with its id. If a job
    is already in flight for the company, that job is returned unless
    ``force`` is set. Poll /status/{job_id} for progress.
    """
    company_id = (request.companyId or "").strip()
    if not company_id:
        raise ValidationError("companyId is required")

    await get_owned_company(company_id, caller_id)
    require_ai_configured()

    result = await start_memo_generation(company_id, force=request.force)
    return success_response(result)


@router.get("/status/{job_id}")
async def get_memo_status(
    job_id: str,
    caller_id: str = Depends(get_caller_id),
) -> dict:
    """Get memo job status.

    Returns elapsed time and a progress message while running, the memo
    once completed, or the error once failed.
    """
    status = await get_memo_job_status(job_id, caller_id)
    return success_response(status)
