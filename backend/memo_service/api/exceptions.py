"""Custom exception classes for the API.

AI service failures are not listed here; they are the LLMError hierarchy in
memo_service.llm.errors.
"""


class AuthError(Exception):
    """Raised when the caller identity is missing or invalid."""

    def __init__(self, message: str = "Unauthorized"):
        self.message = message
        super().__init__(message)


class AccessDeniedError(AuthError):
    """Raised when the caller does not own the parent company."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFoundError(Exception):
    """Raised when a referenced record does not exist."""


class JobNotFoundError(NotFoundError):
    """Raised when a memo job is not found."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job with ID '{job_id}' not found")


class CompanyNotFoundError(NotFoundError):
    """Raised when a company is not found."""

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"Company with ID '{company_id}' not found")


class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class BackendMisconfiguredError(Exception):
    """Raised when a required secret or setting is absent."""

    def __init__(self, setting: str):
        self.setting = setting
        super().__init__(f"Service is not configured: {setting} is missing")


class JobTransitionError(Exception):
    """Raised when a job status update would move the job backwards."""

    def __init__(self, job_id: str, current: str, requested: str):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Job '{job_id}' cannot move from {current} to {requested}"
        )
