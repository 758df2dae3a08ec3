"""Job store for memo generation jobs.

Supports two backends:
1. MongoDB (durable) - jobs survive server restart, pollers can reload pages
2. In-memory - for testing or single-process development

Job records are never deleted by this service. Status updates are
monotonic: every backend runs updates through ``_apply_updates``, which
rejects any transition not listed in ``ALLOWED_TRANSITIONS`` and stamps
``completed_at`` when a job reaches a terminal state.
"""

from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from memo_service.api.exceptions import JobTransitionError
from memo_service.db.mongo import MEMO_JOBS_COLLECTION
from memo_service.models.memo_job import MemoJob, MemoJobStatus, can_transition

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (MemoJobStatus.pending, MemoJobStatus.processing)


def _ensure_tz_aware(value: Optional[datetime]) -> Optional[datetime]:
    """BSON round-trips drop tzinfo; stored times are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _apply_updates(job: MemoJob, updates: dict[str, Any]) -> MemoJob:
    """Return a copy of ``job`` with ``updates`` applied.

    Raises:
        JobTransitionError: If the job is terminal or the status change is not allowed.
    """
    new_status = updates.get("status")
    if new_status is not None:
        new_status = MemoJobStatus(new_status)
        updates = {**updates, "status": new_status}

    if job.is_terminal():
        raise JobTransitionError(
            job.job_id, job.status.value, (new_status or job.status).value
        )
    if new_status is not None and new_status != job.status and not can_transition(job.status, new_status):
        raise JobTransitionError(job.job_id, job.status.value, new_status.value)

    updated = job.model_copy()
    for key, value in updates.items():
        if key in MemoJob.model_fields:
            setattr(updated, key, value)
        else:
            logger.warning(f"Unknown field {key} for memo job update")

    if updated.is_terminal() and updated.completed_at is None:
        updated.completed_at = datetime.now(timezone.utc)

    return updated


class BaseMemoJobStore(ABC):
    """Abstract base class for memo job stores."""

    async def initialize(self) -> None:
        """Called on application startup. Override to create indexes."""
        pass

    @abstractmethod
    async def create_job(self, company_id: str, force: bool = False) -> MemoJob:
        """Create a new pending job."""
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[MemoJob]:
        """Get a job by ID."""
        pass

    @abstractmethod
    async def update_job(self, job_id: str, **updates) -> Optional[MemoJob]:
        """Update a job's fields. Returns None if the job does not exist."""
        pass

    @abstractmethod
    async def get_active_job_for_company(self, company_id: str) -> Optional[MemoJob]:
        """Get the most recent pending or processing job for a company."""
        pass


class InMemoryMemoJobStore(BaseMemoJobStore):
    """In-memory memo job store.

    Safe for concurrent access via an asyncio lock.
    Jobs are lost on server restart.
    """

    def __init__(self):
        self._jobs: dict[str, MemoJob] = {}
        self._lock = asyncio.Lock()

    async def create_job(self, company_id: str, force: bool = False) -> MemoJob:
        """Create a new pending job."""
        job = MemoJob(
            job_id=str(uuid4()),
            company_id=company_id,
            status=MemoJobStatus.pending,
            started_at=datetime.now(timezone.utc),
            force=force,
        )

        async with self._lock:
            self._jobs[job.job_id] = job

        logger.debug(f"Created memo job {job.job_id}")
        return job.model_copy()

    async def get_job(self, job_id: str) -> Optional[MemoJob]:
        """Get a job by ID."""
        async with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy() if job else None

    async def update_job(self, job_id: str, **updates) -> Optional[MemoJob]:
        """Update a job's fields."""
        async with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return None

            updated = _apply_updates(job, updates)
            self._jobs[job_id] = updated
            return updated.model_copy()

    async def get_active_job_for_company(self, company_id: str) -> Optional[MemoJob]:
        """Get the most recent pending or processing job for a company."""
        async with self._lock:
            matching = [
                job for job in self._jobs.values()
                if job.company_id == company_id and job.status in ACTIVE_STATUSES
            ]
            if not matching:
                return None
            return max(matching, key=lambda j: j.started_at).model_copy()


class MongoMemoJobStore(BaseMemoJobStore):
    """MongoDB-backed memo job store.

    Updates are conditional on the status that was read, so two writers
    racing on the same job cannot move it backwards.
    """

    def __init__(self):
        self._index_created = False

    async def initialize(self) -> None:
        """Ensure indexes on startup."""
        await self._ensure_indexes()

    async def _get_collection(self):
        """Get the MongoDB collection."""
        from memo_service.db.mongo import get_database
        db = await get_database()
        return db[MEMO_JOBS_COLLECTION]

    async def _ensure_indexes(self) -> None:
        """Create lookup indexes if they do not exist."""
        if self._index_created:
            return

        try:
            collection = await self._get_collection()
            await collection.create_index("job_id", unique=True)
            await collection.create_index([("company_id", 1), ("started_at", -1)])
            self._index_created = True
            logger.info("MongoDB memo job store indexes created")
        except Exception as e:
            logger.warning(f"Failed to create MongoDB memo job indexes: {e}")

    def _job_to_doc(self, job: MemoJob) -> dict:
        """Convert MemoJob to MongoDB document."""
        return {
            "job_id": job.job_id,
            "company_id": job.company_id,
            "status": job.status.value,
            "started_at": job.started_at,
            "completed_at": job.completed_at,
            "error_message": job.error_message,
            "force": job.force,
        }

    def _doc_to_job(self, doc: dict) -> MemoJob:
        """Convert MongoDB document to MemoJob."""
        return MemoJob(
            job_id=doc["job_id"],
            company_id=doc["company_id"],
            status=MemoJobStatus(doc["status"]),
            started_at=_ensure_tz_aware(doc["started_at"]),
            completed_at=_ensure_tz_aware(doc.get("completed_at")),
            error_message=doc.get("error_message"),
            force=doc.get("force", False),
        )

    async def create_job(self, company_id: str, force: bool = False) -> MemoJob:
        """Create a new pending job in MongoDB."""
        await self._ensure_indexes()

        job = MemoJob(
            job_id=str(uuid4()),
            company_id=company_id,
            status=MemoJobStatus.pending,
            started_at=datetime.now(timezone.utc),
            force=force,
        )

        collection = await self._get_collection()
        await collection.insert_one(self._job_to_doc(job))

        logger.debug(f"Created memo job {job.job_id} in MongoDB")
        return job

    async def get_job(self, job_id: str) -> Optional[MemoJob]:
        """Get a job by ID from MongoDB."""
        collection = await self._get_collection()
        doc = await collection.find_one({"job_id": job_id})

        if not doc:
            return None

        return self._doc_to_job(doc)

    async def update_job(self, job_id: str, **updates) -> Optional[MemoJob]:
        """Update a job's fields in MongoDB."""
        collection = await self._get_collection()

        doc = await collection.find_one({"job_id": job_id})
        if not doc:
            return None

        job = self._doc_to_job(doc)
        updated = _apply_updates(job, updates)

        result = await collection.replace_one(
            {"job_id": job_id, "status": job.status.value},
            self._job_to_doc(updated),
        )
        if result.matched_count == 0:
            # Someone else moved the job between our read and write
            latest = await self.get_job(job_id)
            current = latest.status.value if latest else "missing"
            raise JobTransitionError(job_id, current, updated.status.value)

        return updated

    async def get_active_job_for_company(self, company_id: str) -> Optional[MemoJob]:
        """Get the most recent pending or processing job for a company."""
        collection = await self._get_collection()
        doc = await collection.find_one(
            {
                "company_id": company_id,
                "status": {"$in": [s.value for s in ACTIVE_STATUSES]},
            },
            sort=[("started_at", -1)],
        )

        if not doc:
            return None

        return self._doc_to_job(doc)


# Module-level singleton instance
_memo_job_store: Optional[BaseMemoJobStore] = None


def get_memo_job_store() -> BaseMemoJobStore:
    """Get the default memo job store singleton.

    Backend is chosen by JOB_STORE_BACKEND ("mongo" or "memory").
    """
    global _memo_job_store
    if _memo_job_store is None:
        use_mongo = os.getenv("JOB_STORE_BACKEND", "mongo").lower() == "mongo"
        if use_mongo:
            _memo_job_store = MongoMemoJobStore()
            logger.info("Using MongoDB memo job store")
        else:
            _memo_job_store = InMemoryMemoJobStore()
            logger.info("Using in-memory memo job store")
    return _memo_job_store


def set_memo_job_store(store: Optional[BaseMemoJobStore]) -> None:
    """Set the memo job store instance (for testing)."""
    global _memo_job_store
    _memo_job_store = store


# Convenience functions using default store
async def create_memo_job(company_id: str, force: bool = False) -> MemoJob:
    """Create a new memo job using the default store."""
    return await get_memo_job_store().create_job(company_id, force=force)


async def get_memo_job(job_id: str) -> Optional[MemoJob]:
    """Get a memo job by ID using the default store."""
    return await get_memo_job_store().get_job(job_id)


async def update_memo_job(job_id: str, **updates) -> Optional[MemoJob]:
    """Update a memo job using the default store."""
    return await get_memo_job_store().update_job(job_id, **updates)


async def get_active_memo_job(company_id: str) -> Optional[MemoJob]:
    """Get the in-flight memo job for a company, if any."""
    return await get_memo_job_store().get_active_job_for_company(company_id)
