"""Answer quality check endpoints.

- POST /quality/consistency: contradictions across a company's answers
- POST /quality/completeness: completeness score for one answer

Both are synchronous, read-only and outside the memo job lifecycle.
"""

from fastapi import APIRouter, Depends

from memo_service.api.auth import get_caller_id
from memo_service.api.response import success_response
from memo_service.api.routes.memo import require_ai_configured
from memo_service.models.quality import CompletenessCheckRequest, ConsistencyCheckRequest
from memo_service.services.company_service import get_owned_company
from memo_service.services.quality_checks import check_answer_consistency, score_answer_completeness

router = APIRouter(prefix="/quality", tags=["Quality"])


@router.post("/consistency")
async def check_consistency(
    request: ConsistencyCheckRequest,
    caller_id: str = Depends(get_caller_id),
) -> dict:
    """Flag contradictions between questionnaire answers."""
    await get_owned_company(request.companyId, caller_id)
    require_ai_configured()

    result = await check_answer_consistency(
        request.companyId,
        current_question_key=request.currentQuestionKey,
        all_responses=request.allResponses or None,
    )
    return success_response(result)


@router.post("/completeness")
async def check_completeness(
    request: CompletenessCheckRequest,
    caller_id: str = Depends(get_caller_id),
) -> dict:
    """Score one answer against its quality criteria."""
    require_ai_configured()

    result = await score_answer_completeness(request.questionKey, request.answer)
    return success_response(result)
