"""Services package for backend business logic."""

from . import company_service
from . import content_sanitizer
from . import memo_generator
from . import memo_job_service
from . import memo_job_store
from . import memo_store
from . import quality_checks

from .content_sanitizer import sanitize, to_safe_string
from .memo_job_service import get_memo_job_status, progress_message, start_memo_generation

__all__ = [
    "company_service",
    "content_sanitizer",
    "memo_generator",
    "memo_job_service",
    "memo_job_store",
    "memo_store",
    "quality_checks",
    "sanitize",
    "to_safe_string",
    "start_memo_generation",
    "get_memo_job_status",
    "progress_message",
]
