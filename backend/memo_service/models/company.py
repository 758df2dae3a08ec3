"""Read-side models for companies and their questionnaire data."""

from pydantic import BaseModel


class Company(BaseModel):
    """A founder's company; the parent entity of memo jobs and memos."""

    id: str
    founder_id: str
    name: str
    stage: str = ""
    category: str = ""
    description: str = ""


class CompanySummary(BaseModel):
    """Company fields returned alongside a completed memo."""

    name: str
    stage: str = ""
    category: str = ""
    description: str = ""


class Answer(BaseModel):
    """One questionnaire answer."""

    question_key: str
    answer: str = ""


class QualityCriteria(BaseModel):
    """What a good answer to a questionnaire item contains."""

    question_key: str
    required_elements: list[str] = []
    nice_to_have: list[str] = []
    vc_context: str = ""
    example_good_answer: str = ""
