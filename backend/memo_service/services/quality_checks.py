"""Answer quality checks.

Two read-only helpers the questionnaire calls while a founder is typing:
a cross-answer consistency check and a per-answer completeness score.
Neither creates jobs or writes anything. Rate limit (429) and payment
required (402) errors from the AI service propagate to the caller; any
other unusable AI output degrades to a neutral result.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional

from memo_service.llm import (
    LLMClient,
    LLMRequest,
    MalformedResponseError,
    get_client,
    parse_json_object,
)
from memo_service.models.quality import (
    CompletenessResult,
    CompletenessSuggestion,
    ConsistencyResult,
)
from memo_service.services.company_service import get_quality_criteria, list_answers
from memo_service.services.content_sanitizer import (
    sanitize_consistency_flags,
    sanitize_suggestions,
    to_string_list,
)
from memo_service.services.memo_generator import get_memo_model
from memo_service.services.prompts import (
    COMPLETENESS_SYSTEM_PROMPT,
    CONSISTENCY_SYSTEM_PROMPT,
    build_completeness_user_prompt,
    build_consistency_user_prompt,
)

logger = logging.getLogger(__name__)

# Answers at or below this length do not count towards a consistency check
MIN_FILLED_ANSWER_CHARS = 20
MIN_FILLED_ANSWERS = 2

# Answers shorter than this are not scored
MIN_SCORABLE_ANSWER_CHARS = 30

NEUTRAL_SCORE = 50
MAX_SUGGESTIONS = 3

CONSISTENCY_TEMPERATURE = 0.2
COMPLETENESS_TEMPERATURE = 0.3


async def check_answer_consistency(
    company_id: str,
    current_question_key: Optional[str] = None,
    all_responses: Optional[dict[str, str]] = None,
    llm: Optional[LLMClient] = None,
) -> ConsistencyResult:
    """Look for contradictions between a company's answers.

    Uses ``all_responses`` when given (unsaved edits), otherwise the stored
    answers.

    Raises:
        RateLimitError: AI service returned 429.
        PaymentRequiredError: AI service returned 402.
    """
    if all_responses is None:
        all_responses = {a.question_key: a.answer for a in await list_answers(company_id)}

    filled = {
        key: value
        for key, value in all_responses.items()
        if isinstance(value, str) and len(value.strip()) > MIN_FILLED_ANSWER_CHARS
    }
    if len(filled) < MIN_FILLED_ANSWERS:
        return ConsistencyResult(flags=[], allClear=True, hasEnoughData=False)

    request = LLMRequest.from_prompts(
        system_prompt=CONSISTENCY_SYSTEM_PROMPT,
        user_prompt=build_consistency_user_prompt(filled, current_question_key),
        model=get_memo_model(),
        temperature=CONSISTENCY_TEMPERATURE,
    )
    response = await (llm or get_client()).generate(request)

    try:
        parsed = parse_json_object(response.text, "consistency check")
    except MalformedResponseError as e:
        logger.warning(f"Consistency check returned unusable output: {e}", extra={"company_id": company_id})
        return ConsistencyResult(flags=[], allClear=True, hasEnoughData=True)

    flags = sanitize_consistency_flags(parsed.get("flags"))
    return ConsistencyResult(flags=flags, allClear=not flags, hasEnoughData=True)


def _score(value: Any) -> int:
    """Clamp a model-provided score to 0-100, defaulting to neutral."""
    if isinstance(value, bool):
        return NEUTRAL_SCORE
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return NEUTRAL_SCORE
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return NEUTRAL_SCORE
    return max(0, min(100, int(round(value))))


async def score_answer_completeness(
    question_key: str,
    answer: str,
    llm: Optional[LLMClient] = None,
) -> CompletenessResult:
    """Score how completely an answer covers what investors expect.

    Raises:
        RateLimitError: AI service returned 429.
        PaymentRequiredError: AI service returned 402.
    """
    if len(answer.strip()) < MIN_SCORABLE_ANSWER_CHARS:
        return CompletenessResult(score=0, tooShort=True)

    criteria = await get_quality_criteria(question_key)
    if criteria is None:
        return CompletenessResult(score=NEUTRAL_SCORE, noCriteria=True)

    request = LLMRequest.from_prompts(
        system_prompt=COMPLETENESS_SYSTEM_PROMPT,
        user_prompt=build_completeness_user_prompt(answer, criteria),
        model=get_memo_model(),
        temperature=COMPLETENESS_TEMPERATURE,
    )
    response = await (llm or get_client()).generate(request)
    vc_context = criteria.vc_context or None

    try:
        parsed = parse_json_object(response.text, f"completeness of {question_key}")
    except MalformedResponseError as e:
        logger.warning(f"Completeness check returned unusable output: {e}")
        return CompletenessResult(
            score=NEUTRAL_SCORE,
            missing=list(criteria.required_elements),
            suggestions=[
                CompletenessSuggestion(element=element, prompt=f"Add information about {element}")
                for element in criteria.required_elements[:MAX_SUGGESTIONS]
            ],
            vcContext=vc_context,
        )

    return CompletenessResult(
        score=_score(parsed.get("score")),
        found=to_string_list(parsed.get("found"), "found"),
        missing=to_string_list(parsed.get("missing"), "missing"),
        niceToHaveMissing=to_string_list(parsed.get("niceToHaveMissing"), "niceToHaveMissing"),
        suggestions=sanitize_suggestions(parsed.get("suggestions"), limit=MAX_SUGGESTIONS),
        vcContext=vc_context,
    )
