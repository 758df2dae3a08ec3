"""Memo job trigger and status poller.

Starting a generation creates a pending job and hands the orchestrator to
the event loop as a fire-and-forget task, so the request returns in
milliseconds while the AI calls run for minutes. The job record is the only
channel back to the client, which polls get_memo_job_status until it sees a
terminal status.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Coroutine
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from memo_service.api.exceptions import JobNotFoundError
from memo_service.llm import LLMClient
from memo_service.models.api_responses import MemoStatusData, MemoTriggerData
from memo_service.models.company import CompanySummary
from memo_service.models.memo_job import MemoJobStatus
from memo_service.services.company_service import get_owned_company
from memo_service.services.memo_generator import MAX_ERROR_MESSAGE_LENGTH, run_generation
from memo_service.services.memo_job_store import (
    create_memo_job,
    get_active_memo_job,
    get_memo_job,
    update_memo_job,
)
from memo_service.services.memo_store import get_latest_memo

logger = logging.getLogger(__name__)

Dispatcher = Callable[[Coroutine[Any, Any, None], str], Any]

GENERATION_FAILED_MESSAGE = "Memo generation failed"
MEMO_MISSING_MESSAGE = "Memo not found after completion"

# Upper bounds (seconds elapsed) for each message. Purely cosmetic: the
# orchestrator does not report which step it is on.
PROGRESS_MESSAGES: list[tuple[int, str]] = [
    (10, "Initializing analysis..."),
    (25, "Extracting market context..."),
    (45, "Researching competitors..."),
    (65, "Generating Problem & Solution sections..."),
    (85, "Generating Market & Competition sections..."),
    (105, "Generating Team & Business Model sections..."),
    (125, "Generating Traction & Vision sections..."),
    (145, "Creating Investment Thesis..."),
    (165, "Generating VC Quick Take..."),
]
FINAL_PROGRESS_MESSAGE = "Finalizing your memo..."

# Strong references so running tasks are not garbage collected
_background_tasks: set[asyncio.Task] = set()

# Per-company locks around the in-flight check, removed once no trigger holds or awaits them
_trigger_locks: dict[str, asyncio.Lock] = {}
_trigger_lock_users: dict[str, int] = {}


def progress_message(elapsed_seconds: float) -> str:
    """Progress text for a job that has been running ``elapsed_seconds``."""
    for upper_bound, message in PROGRESS_MESSAGES:
        if elapsed_seconds < upper_bound:
            return message
    return FINAL_PROGRESS_MESSAGE


def dispatch_background(coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task:
    """Schedule a coroutine on the running loop and track it until done."""
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def drain_background_tasks(timeout: Optional[float] = None) -> None:
    """Wait for in-flight generations to finish. Tasks are never cancelled."""
    pending = set(_background_tasks)
    if not pending:
        return
    logger.info(f"Waiting for {len(pending)} memo generation task(s)")
    _, still_running = await asyncio.wait(pending, timeout=timeout)
    if still_running:
        logger.warning(f"{len(still_running)} memo generation task(s) still running at shutdown")


@asynccontextmanager
async def _company_trigger_lock(company_id: str) -> AsyncIterator[None]:
    """Serialize the in-flight check and job creation for one company."""
    lock = _trigger_locks.setdefault(company_id, asyncio.Lock())
    _trigger_lock_users[company_id] = _trigger_lock_users.get(company_id, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _trigger_lock_users[company_id] -= 1
        if not _trigger_lock_users[company_id]:
            del _trigger_lock_users[company_id]
            del _trigger_locks[company_id]


async def start_memo_generation(
    company_id: str,
    force: bool = False,
    dispatcher: Optional[Dispatcher] = None,
    llm: Optional[LLMClient] = None,
) -> MemoTriggerData:
    """Start memo generation for a company and return immediately.

    Caller identity, company ownership and AI configuration are checked by
    the route before this is called.

    If a pending or processing job already exists and ``force`` is false,
    that job is returned instead of starting another one. Concurrent
    triggers for one company are serialized within this process, so only
    one of them creates a job. If the dispatcher raises, the new job is
    marked failed and its id is still returned.

    Args:
        company_id: Company to generate a memo for.
        force: Start a new job even if one is in flight.
        dispatcher: Schedules the orchestrator coroutine; defaults to an asyncio task.
        llm: AI client override passed through to the orchestrator.

    Returns:
        The job id, its status and whether an existing job was reused.
    """
    async with _company_trigger_lock(company_id):
        if not force:
            active = await get_active_memo_job(company_id)
            if active is not None:
                logger.info(
                    "Generation already in progress, returning existing job",
                    extra={"job_id": active.job_id, "company_id": company_id},
                )
                return MemoTriggerData(
                    jobId=active.job_id,
                    status=active.status.value,
                    reused=True,
                    message="Generation already in progress",
                )

        job = await create_memo_job(company_id, force=force)

    log_extra = {"job_id": job.job_id, "company_id": company_id}

    coro = run_generation(job.job_id, company_id, llm=llm)
    try:
        (dispatcher or dispatch_background)(coro, f"memo_generation_{job.job_id}")
    except Exception as e:
        coro.close()
        logger.exception(f"Failed to dispatch memo generation: {e}", extra=log_extra)
        await update_memo_job(
            job.job_id,
            status=MemoJobStatus.failed,
            error_message=f"Failed to dispatch generation: {e}"[:MAX_ERROR_MESSAGE_LENGTH],
        )
        return MemoTriggerData(
            jobId=job.job_id,
            status=MemoJobStatus.failed.value,
            message="Memo generation could not be started",
        )

    logger.info("Memo generation dispatched", extra=log_extra)
    return MemoTriggerData(
        jobId=job.job_id,
        status=MemoJobStatus.pending.value,
        message="Memo generation started",
    )


async def get_memo_job_status(
    job_id: str,
    caller_id: str,
    now: Optional[datetime] = None,
) -> MemoStatusData:
    """Report a job's status to the company's owner.

    Raises:
        JobNotFoundError: If the job does not exist.
        CompanyNotFoundError: If the job's company does not exist.
        AccessDeniedError: If the caller does not own the company.
    """
    job = await get_memo_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)

    # Ownership is checked whatever the job status
    company = await get_owned_company(job.company_id, caller_id)

    if job.status == MemoJobStatus.completed:
        memo = await get_latest_memo(job.company_id)
        if memo is None:
            logger.error(
                "Job completed but no memo exists",
                extra={"job_id": job_id, "company_id": job.company_id},
            )
            return MemoStatusData(status=MemoJobStatus.failed.value, error=MEMO_MISSING_MESSAGE)

        return MemoStatusData(
            status=MemoJobStatus.completed.value,
            structuredContent=memo.structured_content.to_storage(),
            company=CompanySummary(
                name=company.name,
                stage=company.stage,
                category=company.category,
                description=company.description,
            ),
            memoId=memo.memo_id,
            generationTimeSeconds=job.generation_seconds(),
        )

    if job.status == MemoJobStatus.failed:
        return MemoStatusData(
            status=MemoJobStatus.failed.value,
            error=job.error_message or GENERATION_FAILED_MESSAGE,
        )

    elapsed = job.elapsed_seconds(now)
    return MemoStatusData(
        status=job.status.value,
        elapsedSeconds=elapsed,
        message=progress_message(elapsed),
    )
