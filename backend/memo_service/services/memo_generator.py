"""Memo generation orchestrator.

Runs one job end to end: marks it processing, makes the AI calls in a
fixed order (market context, competitor research, sections, Investment
Thesis, Quick Take), sanitizes the assembled document, writes the memo and
marks the job completed.

The two research calls are best effort: if either fails, the sections are
written without that context. Rate limit and payment errors, and any other
exception, abort the run. The job is marked failed with a readable
message and no memo is written; the previous memo (if any) is left as is.
"""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Optional

from memo_service.api.exceptions import JobNotFoundError
from memo_service.llm import (
    LLMClient,
    LLMError,
    LLMRequest,
    PaymentRequiredError,
    RateLimitError,
    get_client,
    parse_json_object,
)
from memo_service.models.company import QualityCriteria
from memo_service.models.memo import StructuredDocument, VCQuestion
from memo_service.models.memo_job import MemoJobStatus
from memo_service.services.company_service import (
    get_company,
    get_custom_prompts,
    list_answers,
    list_quality_criteria,
)
from memo_service.services.content_sanitizer import sanitize
from memo_service.services.memo_job_store import update_memo_job
from memo_service.services.memo_store import upsert_memo
from memo_service.services.prompts import (
    INVESTMENT_THESIS,
    QUICK_TAKE_SYSTEM_PROMPT,
    RESEARCH_SYSTEM_PROMPT,
    SECTION_ORDER,
    SECTION_SYSTEM_PROMPT,
    build_competitor_research_user_prompt,
    build_financial_context,
    build_market_context_user_prompt,
    build_quick_take_user_prompt,
    build_section_user_prompt,
    build_thesis_user_prompt,
    format_competitor_research,
    format_market_context,
    group_answers_by_section,
    section_for_question,
)

logger = logging.getLogger(__name__)

# A memo with fewer generated sections (thesis excluded) is not worth saving
MIN_SECTIONS = 3

MAX_ERROR_MESSAGE_LENGTH = 500

DEFAULT_MEMO_MODEL = "gpt-4o"
SECTION_TEMPERATURE = 0.7
SECTION_MAX_TOKENS = 3000
QUICK_TAKE_MAX_TOKENS = 1500
MARKET_CONTEXT_MAX_TOKENS = 1500
COMPETITOR_RESEARCH_MAX_TOKENS = 3000

COMPETITION = "Competition"


class IncompleteMemoError(Exception):
    """Raised when too few sections could be generated."""


def get_memo_model() -> str:
    """Model used for every memo call (MEMO_LLM_MODEL)."""
    return os.getenv("MEMO_LLM_MODEL", DEFAULT_MEMO_MODEL)


def describe_failure(exc: BaseException) -> str:
    """Human-readable job error message, including any upstream status."""
    if isinstance(exc, LLMError):
        status = f" ({exc.status_code})" if exc.status_code else ""
        message = f"AI service error{status}: {exc.message}"
    else:
        message = str(exc) or type(exc).__name__
    return message[:MAX_ERROR_MESSAGE_LENGTH]


def _as_section_payload(parsed: dict[str, Any]) -> dict[str, Any]:
    """Wrap legacy flat section output under ``narrative``."""
    if "narrative" in parsed or "vcReflection" in parsed:
        return parsed
    return {"narrative": parsed}


async def _complete_json(
    llm: LLMClient,
    system_prompt: str,
    user_prompt: str,
    context: str,
    max_tokens: int,
) -> dict[str, Any]:
    """One AI call, parsed to a JSON object."""
    request = LLMRequest.from_prompts(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        model=get_memo_model(),
        temperature=SECTION_TEMPERATURE,
        max_tokens=max_tokens,
    )
    response = await llm.generate(request)
    return parse_json_object(response.text, context)


async def _research_json(
    llm: LLMClient,
    user_prompt: str,
    context: str,
    max_tokens: int,
    log_extra: dict[str, Any],
) -> Optional[dict[str, Any]]:
    """Best-effort research call. Returns None if the AI call or parsing fails.

    Rate limit and payment errors still propagate and fail the run.
    """
    logger.info(f"Running {context}", extra={**log_extra, "step": context})
    try:
        return await _complete_json(llm, RESEARCH_SYSTEM_PROMPT, user_prompt, context, max_tokens)
    except (RateLimitError, PaymentRequiredError):
        raise
    except LLMError as e:
        logger.warning(
            f"{context} failed, continuing without it: {e}",
            extra={**log_extra, "step": context},
        )
        return None


# ==============================================================================
# VC question coaching defaults
# ==============================================================================

_RATIONALE_RULES: list[tuple[tuple[str, ...], tuple[str, ...], str]] = [
    (
        ("competitor", "differentiat"),
        ("competition",),
        "VCs invest in companies that can defend their position. Competitive dynamics show whether you "
        "have a sustainable advantage or are in a race to the bottom.",
    ),
    (
        ("customer", "retention", "churn"),
        (),
        "Retention is the clearest proof of value. High churn means the product is not solving the problem "
        "well enough, however fast customers are acquired.",
    ),
    (
        ("revenue", "pricing", "monetiz"),
        ("business",),
        "Unit economics decide whether growth creates or destroys value. Investors need a path to "
        "profitability at scale.",
    ),
    (
        ("team", "founder", "hire"),
        ("team",),
        "Investors back teams, not only ideas. Execution capability and founder-market fit often decide "
        "the outcome.",
    ),
    (
        ("market", "tam", "scale"),
        (),
        "Market size caps the outcome. A fund-returning investment needs a large addressable market.",
    ),
    (
        ("traction", "growth", "metric"),
        (),
        "Traction is the best predictor of future success. Investors look for measurable, repeatable growth.",
    ),
]

_DEFAULT_RATIONALE = (
    "This question tests an assumption the investment case depends on. Investors need concrete evidence, "
    "not promises."
)

_PREPARATION_RULES: list[tuple[tuple[str, ...], str]] = [
    (
        ("why", "how"),
        "Prepare a clear, specific answer with concrete examples and data. Generic answers suggest shallow "
        "understanding.",
    ),
    (
        ("data", "metric", "number"),
        "Gather the metrics with clear definitions and methodology. Show trends over time and include "
        "benchmarks for context.",
    ),
    (
        ("risk", "concern", "challenge"),
        "Acknowledge the risk honestly, then explain the mitigation with specific actions and timelines.",
    ),
    (
        ("competitor", "alternative"),
        "Build a competitive matrix covering direct competitors and the alternatives customers use today.",
    ),
]

_DEFAULT_PREPARATION = (
    "Prepare specific evidence: customer testimonials, contracts, metrics or third-party validation."
)


def default_rationale(question: str, section_title: str = "") -> str:
    """Keyword-based explanation of why investors ask a question."""
    q = question.lower()
    s = section_title.lower()
    for question_words, section_words, text in _RATIONALE_RULES:
        if any(w in q for w in question_words) or any(w in s for w in section_words):
            return text
    return _DEFAULT_RATIONALE


def default_preparation(question: str) -> str:
    """Keyword-based advice on what to prepare for a question."""
    q = question.lower()
    for words, text in _PREPARATION_RULES:
        if any(w in q for w in words):
            return text
    return _DEFAULT_PREPARATION


def fill_question_coaching(document: StructuredDocument) -> StructuredDocument:
    """Fill empty rationale and preparation text on VC questions."""
    enriched = document.model_copy(deep=True)
    for section in enriched.sections:
        if section.vcReflection is None:
            continue
        filled = []
        for i, q in enumerate(section.vcReflection.questions):
            question = q.question.strip() or f"Key question {i + 1}"
            filled.append(
                VCQuestion(
                    question=question,
                    vcRationale=q.vcRationale if q.vcRationale.strip() else default_rationale(question, section.title),
                    whatToPrepare=q.whatToPrepare if q.whatToPrepare.strip() else default_preparation(question),
                )
            )
        section.vcReflection.questions = filled
    return enriched


# ==============================================================================
# Orchestrator
# ==============================================================================

def _criteria_by_section(criteria: list[QualityCriteria]) -> dict[str, list[QualityCriteria]]:
    grouped: dict[str, list[QualityCriteria]] = {}
    for row in criteria:
        grouped.setdefault(section_for_question(row.question_key), []).append(row)
    return grouped


async def generate_memo_document(
    company_id: str,
    llm: LLMClient,
    log_extra: Optional[dict[str, Any]] = None,
) -> StructuredDocument:
    """Make every AI call for a company and return the sanitized memo.

    Raises:
        CompanyNotFoundError: If the company disappeared.
        LLMError: If any AI call fails or returns unusable output.
        IncompleteMemoError: If fewer than MIN_SECTIONS sections were produced.
    """
    log_extra = log_extra or {"company_id": company_id}

    company = await get_company(company_id)
    answers = await list_answers(company_id)
    custom_prompts = await get_custom_prompts()
    criteria = _criteria_by_section(await list_quality_criteria())

    grouped = group_answers_by_section(answers)
    financial_context = build_financial_context(answers)

    market_context = await _research_json(
        llm,
        build_market_context_user_prompt(company, answers),
        "market context",
        MARKET_CONTEXT_MAX_TOKENS,
        log_extra,
    )
    market_context_text = format_market_context(market_context)

    competitor_text = ""
    if grouped.get(COMPETITION):
        research = await _research_json(
            llm,
            build_competitor_research_user_prompt(company, answers, market_context),
            "competitor research",
            COMPETITOR_RESEARCH_MAX_TOKENS,
            log_extra,
        )
        competitor_text = format_competitor_research(research)

    sections: dict[str, dict[str, Any]] = {}
    for section_name in SECTION_ORDER:
        section_answers = grouped.get(section_name)
        if not section_answers:
            continue

        logger.info(f"Generating {section_name} section", extra={**log_extra, "step": section_name})
        user_prompt = build_section_user_prompt(
            section_name=section_name,
            company=company,
            answers=section_answers,
            financial_context=financial_context,
            criteria=criteria.get(section_name),
            custom_prompt=custom_prompts.get(section_name),
            market_context=market_context_text,
            competitor_context=competitor_text if section_name == COMPETITION else "",
        )
        parsed = await _complete_json(
            llm, SECTION_SYSTEM_PROMPT, user_prompt, f"{section_name} section", SECTION_MAX_TOKENS
        )
        sections[section_name] = _as_section_payload(parsed)

    if len(sections) < MIN_SECTIONS:
        raise IncompleteMemoError(
            f"Incomplete memo generation: only {len(sections)} sections generated"
        )

    logger.info("Generating Investment Thesis", extra={**log_extra, "step": INVESTMENT_THESIS})
    thesis = await _complete_json(
        llm,
        SECTION_SYSTEM_PROMPT,
        build_thesis_user_prompt(
            company, grouped, sections, custom_prompt=custom_prompts.get(INVESTMENT_THESIS)
        ),
        INVESTMENT_THESIS,
        SECTION_MAX_TOKENS,
    )
    sections[INVESTMENT_THESIS] = _as_section_payload(thesis)

    logger.info("Generating VC Quick Take", extra={**log_extra, "step": "quick_take"})
    quick_take = await _complete_json(
        llm,
        QUICK_TAKE_SYSTEM_PROMPT,
        build_quick_take_user_prompt(company, sections),
        "VC Quick Take",
        QUICK_TAKE_MAX_TOKENS,
    )

    assembled = {
        "sections": [{**content, "title": title} for title, content in sections.items()],
        "quickTake": quick_take,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
    }
    document = sanitize(assembled)
    if document is None:
        raise ValueError("Generated memo could not be sanitized")

    return fill_question_coaching(document)


async def run_generation(
    job_id: str,
    company_id: str,
    llm: Optional[LLMClient] = None,
) -> None:
    """Background task that performs the actual generation.

    Never raises: every failure is recorded on the job.

    Args:
        job_id: The job identifier.
        company_id: Company the memo is generated for.
        llm: AI client override (tests); defaults to the shared client.
    """
    log_extra = {"job_id": job_id, "company_id": company_id}
    start_time = time.perf_counter()

    try:
        job = await update_memo_job(job_id, status=MemoJobStatus.processing)
        if job is None:
            raise JobNotFoundError(job_id)

        logger.info("Memo generation started", extra=log_extra)

        document = await generate_memo_document(company_id, llm or get_client(), log_extra)
        memo = await upsert_memo(company_id, document)
        await update_memo_job(job_id, status=MemoJobStatus.completed)

        logger.info(
            f"Memo generation complete: {len(document.sections)} sections, "
            f"memo {memo.memo_id}, {time.perf_counter() - start_time:.1f}s",
            extra=log_extra,
        )

    except Exception as e:
        logger.exception(f"Memo generation failed for job {job_id}: {e}", extra=log_extra)
        try:
            await update_memo_job(
                job_id,
                status=MemoJobStatus.failed,
                error_message=describe_failure(e),
            )
        except Exception:
            logger.exception(f"Could not record failure for job {job_id}", extra=log_extra)
