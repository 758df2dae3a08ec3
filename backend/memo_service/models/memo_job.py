"""Memo generation job model.

Tracks one run of the generation pipeline for one company. Status only
moves forward: pending -> processing -> completed | failed, with
pending -> failed reserved for a dispatch that never started.

Pydantic v2. Extra fields are forbidden to prevent drift.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict


class MemoJobStatus(str, Enum):
    """Status of a memo generation job."""
    pending = "pending"          # Job created, orchestrator not started yet
    processing = "processing"    # Orchestrator running
    completed = "completed"      # Memo written
    failed = "failed"            # Run aborted, error_message set


TERMINAL_STATUSES = frozenset({MemoJobStatus.completed, MemoJobStatus.failed})

ALLOWED_TRANSITIONS: dict[MemoJobStatus, frozenset[MemoJobStatus]] = {
    MemoJobStatus.pending: frozenset({MemoJobStatus.processing, MemoJobStatus.failed}),
    MemoJobStatus.processing: frozenset({MemoJobStatus.completed, MemoJobStatus.failed}),
    MemoJobStatus.completed: frozenset(),
    MemoJobStatus.failed: frozenset(),
}


def _utcnow() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def can_transition(current: MemoJobStatus, new: MemoJobStatus) -> bool:
    """Check whether a job may move from ``current`` to ``new``."""
    return new in ALLOWED_TRANSITIONS[current]


class MemoJob(BaseModel):
    """State for a memo generation job."""
    model_config = ConfigDict(extra="forbid")

    # Identity
    job_id: str = Field(description="UUID identifier for this job")
    company_id: str = Field(description="Company the memo is generated for")

    # Status
    status: MemoJobStatus = Field(
        default=MemoJobStatus.pending,
        description="Current job status"
    )

    # Timestamps
    started_at: datetime = Field(
        default_factory=_utcnow,
        description="When the job was created"
    )
    completed_at: Optional[datetime] = Field(
        default=None,
        description="When the job reached completed or failed"
    )

    # Error handling
    error_message: Optional[str] = Field(
        default=None,
        description="Human-readable failure reason, only when failed"
    )

    force: bool = Field(
        default=False,
        description="Whether the trigger bypassed the in-flight job check"
    )

    def is_terminal(self) -> bool:
        """Check if job is in a terminal state (no more updates expected)."""
        return self.status in TERMINAL_STATUSES

    def elapsed_seconds(self, now: Optional[datetime] = None) -> int:
        """Seconds since the job was created, rounded to the nearest second."""
        now = now or _utcnow()
        return max(0, round((now - self.started_at).total_seconds()))

    def generation_seconds(self) -> Optional[int]:
        """Seconds from creation to completion, rounded, if terminal."""
        if self.completed_at is None:
            return None
        return max(0, round((self.completed_at - self.started_at).total_seconds()))
