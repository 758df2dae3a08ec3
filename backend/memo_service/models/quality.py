"""Models for the answer quality checks.

Neither check touches the job state machine; both are read-only over the
company's answers.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class FlagSeverity(str, Enum):
    """How serious a consistency flag is."""
    warning = "warning"
    error = "error"


class ConsistencyFlag(BaseModel):
    """Two answers that contradict each other."""

    severity: FlagSeverity = FlagSeverity.warning
    field1: str = ""
    field2: str = ""
    description: str = ""
    suggestion: str = ""


class ConsistencyResult(BaseModel):
    """Result of a consistency check across answers."""

    flags: list[ConsistencyFlag] = []
    allClear: bool = True
    hasEnoughData: bool = True


class CompletenessSuggestion(BaseModel):
    """A nudge towards a missing element of an answer."""

    element: str = ""
    prompt: str = ""
    example: str = ""


class CompletenessResult(BaseModel):
    """Completeness score for a single answer."""

    score: int = Field(default=50, ge=0, le=100)
    found: list[str] = []
    missing: list[str] = []
    niceToHaveMissing: list[str] = []
    suggestions: list[CompletenessSuggestion] = []
    vcContext: Optional[str] = None
    tooShort: Optional[bool] = None
    noCriteria: Optional[bool] = None


class ConsistencyCheckRequest(BaseModel):
    """Request body for POST /api/quality/consistency."""

    companyId: str = Field(min_length=1)
    currentQuestionKey: Optional[str] = None
    allResponses: dict[str, str] = Field(default_factory=dict)


class CompletenessCheckRequest(BaseModel):
    """Request body for POST /api/quality/completeness."""

    questionKey: str = Field(min_length=1)
    answer: str = ""
