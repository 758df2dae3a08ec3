"""Pydantic models for the structured memo document.

These are the strict shapes the content sanitizer produces. Every leaf is a
plain string, a string enum member, or a list of those, so the rendering
client never has to guard against objects where it expects text.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class Emphasis(str, Enum):
    """Visual weight of a memo paragraph."""

    HIGH = "high"
    MEDIUM = "medium"
    NORMAL = "normal"
    HERO = "hero"
    NARRATIVE = "narrative"
    QUOTE = "quote"


class ReadinessLevel(str, Enum):
    """How ready the company looks for a VC conversation."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Paragraph(BaseModel):
    """A block of memo text."""

    text: str
    emphasis: Emphasis | None = None


class Highlight(BaseModel):
    """A headline metric shown next to a section."""

    metric: str
    label: str


class Narrative(BaseModel):
    """Main body of a section."""

    paragraphs: list[Paragraph] = []
    highlights: list[Highlight] = []
    keyPoints: list[str] = []


class VCQuestion(BaseModel):
    """A question an investor is likely to ask, with coaching."""

    question: str
    vcRationale: str = ""
    whatToPrepare: str = ""


class VCReflection(BaseModel):
    """Investor-perspective commentary attached to a section."""

    analysis: str = ""
    questions: list[VCQuestion] = []
    benchmarking: str = ""
    conclusion: str = ""


class Section(BaseModel):
    """One titled memo section.

    Sections written by older prompts carry paragraphs, highlights and
    keyPoints directly; newer ones nest them under ``narrative``.
    """

    title: str
    paragraphs: list[Paragraph] = []
    highlights: list[Highlight] = []
    keyPoints: list[str] = []
    narrative: Narrative | None = None
    vcReflection: VCReflection | None = None


class QuickTake(BaseModel):
    """Short investor verdict shown at the top of the memo."""

    verdict: str = ""
    concerns: list[str] = []
    strengths: list[str] = []
    readinessLevel: ReadinessLevel = ReadinessLevel.MEDIUM
    readinessRationale: str = ""


class StructuredDocument(BaseModel):
    """Sanitized memo content as stored and served."""

    sections: list[Section] = []
    quickTake: QuickTake | None = None
    generatedAt: str | None = None

    def to_storage(self) -> dict:
        """Serialize for the memos collection and API responses."""
        return self.model_dump(mode="json", exclude_none=True)


class Memo(BaseModel):
    """Persisted memo for a company."""

    memo_id: str
    company_id: str
    structured_content: StructuredDocument
    created_at: datetime
    updated_at: datetime
