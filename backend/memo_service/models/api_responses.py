"""API models for the async memo generation endpoints.

The job pattern:
1. POST /api/memo/generate -> pending job_id (or the in-flight one)
2. GET /api/memo/status/:job_id -> progress message, memo, or error

Pydantic v2.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from .company import CompanySummary


class MemoGenerateRequest(BaseModel):
    """Request body for memo generation.

    companyId is optional at the schema level so a missing value can be
    reported as a validation error in the standard envelope.
    """

    companyId: Optional[str] = Field(default=None, description="Company to generate a memo for")
    force: bool = Field(
        default=False,
        description="Start a new job even if one is already in flight"
    )


class MemoTriggerData(BaseModel):
    """Response data for the generate endpoint."""

    jobId: str = Field(description="Job ID for polling")
    status: str = Field(description="Current job status")
    reused: bool = Field(default=False, description="True when an in-flight job was returned")
    message: str = Field(description="Status message")


class MemoStatusData(BaseModel):
    """Response data for the status endpoint.

    Exactly one shape is populated depending on status:
    - pending/processing: elapsedSeconds + message
    - completed: structuredContent, company, memoId, generationTimeSeconds
    - failed: error
    """

    status: str
    elapsedSeconds: Optional[int] = None
    message: Optional[str] = None
    structuredContent: Optional[dict[str, Any]] = None
    company: Optional[CompanySummary] = None
    memoId: Optional[str] = None
    generationTimeSeconds: Optional[int] = None
    error: Optional[str] = None
