"""Read access to companies and their questionnaire data.

Companies, answers, prompt overrides and quality criteria are written by
other parts of the product; the memo pipeline only reads them.
"""

import logging
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId

from memo_service.api.exceptions import AccessDeniedError, CompanyNotFoundError
from memo_service.db.mongo import (
    COMPANIES_COLLECTION,
    CRITERIA_COLLECTION,
    PROMPTS_COLLECTION,
    RESPONSES_COLLECTION,
    get_database,
)
from memo_service.models.company import Answer, Company, QualityCriteria

logger = logging.getLogger(__name__)


def _id_filter(company_id: str) -> dict:
    """Match either an ObjectId or a string primary key."""
    try:
        return {"_id": {"$in": [ObjectId(company_id), company_id]}}
    except (InvalidId, TypeError):
        return {"_id": company_id}


def _to_company(doc: dict) -> Company:
    """Convert MongoDB document to Company model."""
    return Company(
        id=str(doc["_id"]),
        founder_id=str(doc.get("founder_id", "")),
        name=doc.get("name") or "",
        stage=doc.get("stage") or "",
        category=doc.get("category") or "",
        description=doc.get("description") or "",
    )


async def find_company(company_id: str) -> Optional[Company]:
    """Get a company by ID, or None."""
    db = await get_database()
    doc = await db[COMPANIES_COLLECTION].find_one(_id_filter(company_id))
    if not doc:
        return None
    return _to_company(doc)


async def get_company(company_id: str) -> Company:
    """Get a company by ID.

    Raises:
        CompanyNotFoundError: If no such company exists.
    """
    company = await find_company(company_id)
    if company is None:
        raise CompanyNotFoundError(company_id)
    return company


async def get_owned_company(company_id: str, caller_id: str) -> Company:
    """Get a company the caller owns.

    Raises:
        CompanyNotFoundError: If no such company exists.
        AccessDeniedError: If the caller is not the company's founder.
    """
    company = await get_company(company_id)
    if company.founder_id != caller_id:
        logger.warning(
            "Caller attempted to access a company they do not own",
            extra={"company_id": company_id},
        )
        raise AccessDeniedError()
    return company


async def list_answers(company_id: str) -> list[Answer]:
    """List all non-empty questionnaire answers for a company."""
    db = await get_database()
    cursor = db[RESPONSES_COLLECTION].find({"company_id": company_id})
    docs = await cursor.to_list(length=None)

    answers = []
    for doc in docs:
        text = doc.get("answer")
        if not isinstance(text, str) or not text.strip():
            continue
        answers.append(Answer(question_key=str(doc.get("question_key", "")), answer=text))
    return answers


async def get_custom_prompts() -> dict[str, str]:
    """Prompt overrides keyed by section name."""
    db = await get_database()
    cursor = db[PROMPTS_COLLECTION].find({})
    docs = await cursor.to_list(length=None)

    return {
        doc["section_name"]: doc["prompt"]
        for doc in docs
        if doc.get("section_name") and doc.get("prompt")
    }


def _as_list(value) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    if isinstance(value, str) and value.strip():
        return [value]
    return []


def _to_criteria(doc: dict) -> QualityCriteria:
    """Convert MongoDB document to QualityCriteria model."""
    return QualityCriteria(
        question_key=doc["question_key"],
        required_elements=_as_list(doc.get("required_elements")),
        nice_to_have=_as_list(doc.get("nice_to_have")),
        vc_context=doc.get("vc_context") or "",
        example_good_answer=doc.get("example_good_answer") or "",
    )


async def get_quality_criteria(question_key: str) -> Optional[QualityCriteria]:
    """Quality criteria for one questionnaire item, or None."""
    db = await get_database()
    doc = await db[CRITERIA_COLLECTION].find_one({"question_key": question_key})
    if not doc:
        return None
    return _to_criteria(doc)


async def list_quality_criteria() -> list[QualityCriteria]:
    """All quality criteria rows."""
    db = await get_database()
    cursor = db[CRITERIA_COLLECTION].find({})
    docs = await cursor.to_list(length=None)
    return [_to_criteria(doc) for doc in docs if doc.get("question_key")]
