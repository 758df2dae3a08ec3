"""Backend models package.

Note: keep backend models as the source-of-truth schemas for OpenAPI + frontend types.
"""

from .api_responses import MemoGenerateRequest, MemoStatusData, MemoTriggerData
from .company import Answer, Company, CompanySummary, QualityCriteria
from .memo import (
    Emphasis,
    Highlight,
    Memo,
    Narrative,
    Paragraph,
    QuickTake,
    ReadinessLevel,
    Section,
    StructuredDocument,
    VCQuestion,
    VCReflection,
)
from .memo_job import MemoJob, MemoJobStatus, TERMINAL_STATUSES, can_transition
from .quality import (
    CompletenessCheckRequest,
    CompletenessResult,
    CompletenessSuggestion,
    ConsistencyCheckRequest,
    ConsistencyFlag,
    ConsistencyResult,
    FlagSeverity,
)

__all__ = [
    # Jobs
    "MemoJob",
    "MemoJobStatus",
    "TERMINAL_STATUSES",
    "can_transition",
    # Memo document
    "Emphasis",
    "ReadinessLevel",
    "Paragraph",
    "Highlight",
    "Narrative",
    "VCQuestion",
    "VCReflection",
    "Section",
    "QuickTake",
    "StructuredDocument",
    "Memo",
    # Companies
    "Company",
    "CompanySummary",
    "Answer",
    "QualityCriteria",
    # Quality checks
    "FlagSeverity",
    "ConsistencyFlag",
    "ConsistencyResult",
    "CompletenessSuggestion",
    "CompletenessResult",
    "ConsistencyCheckRequest",
    "CompletenessCheckRequest",
    # API
    "MemoGenerateRequest",
    "MemoTriggerData",
    "MemoStatusData",
]
