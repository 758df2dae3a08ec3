"""Persistence for generated memos.

One memo per company: a later successful run overwrites the structured
content and bumps updated_at, keeping the original memo_id and created_at.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pymongo import ReturnDocument

from memo_service.db.mongo import MEMOS_COLLECTION, get_database
from memo_service.models.memo import Memo, StructuredDocument
from memo_service.services.content_sanitizer import sanitize


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_memo(doc: dict) -> Memo:
    """Convert MongoDB document to Memo model."""
    return Memo(
        memo_id=doc["memo_id"],
        company_id=doc["company_id"],
        # Rows written by older clients may not match the current model
        structured_content=sanitize(doc.get("structured_content")) or StructuredDocument(),
        created_at=_as_utc(doc["created_at"]),
        updated_at=_as_utc(doc["updated_at"]),
    )


async def upsert_memo(company_id: str, content: StructuredDocument) -> Memo:
    """Create or overwrite the memo for a company."""
    db = await get_database()
    collection = db[MEMOS_COLLECTION]

    now = datetime.now(timezone.utc)
    doc = await collection.find_one_and_update(
        {"company_id": company_id},
        {
            "$set": {
                "structured_content": content.to_storage(),
                "updated_at": now,
            },
            "$setOnInsert": {
                "memo_id": str(uuid4()),
                "company_id": company_id,
                "created_at": now,
            },
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return _to_memo(doc)


async def get_latest_memo(company_id: str) -> Optional[Memo]:
    """Most recently updated memo for a company, or None."""
    db = await get_database()
    doc = await db[MEMOS_COLLECTION].find_one(
        {"company_id": company_id},
        sort=[("updated_at", -1)],
    )
    if not doc:
        return None
    return _to_memo(doc)
