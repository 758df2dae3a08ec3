"""LLM error hierarchy.

Every failure talking to the AI completion service is an LLMError. The
upstream HTTP status (when there was one) travels on the exception so job
error messages and HTTP responses can report it.
"""


class LLMError(Exception):
    """Base exception for AI service operations."""

    status_code: int | None = None

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        request_id: str | None = None,
        correlation_id: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.request_id = request_id
        self.correlation_id = correlation_id
        if status_code is not None:
            self.status_code = status_code

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.request_id:
            parts.append(f"request_id={self.request_id}")
        return " ".join(parts)


class AuthenticationError(LLMError):
    """401/403 - Invalid or missing API key.

    Non-retryable. Check API key configuration.
    """

    status_code = 401


class PaymentRequiredError(LLMError):
    """402 - Credits exhausted on the AI gateway.

    Non-retryable. Surfaced to callers of the quality checks as 402.
    """

    status_code = 402


class RateLimitError(LLMError):
    """429 - Rate limit exceeded.

    Retryable with backoff when the client is configured for retries.
    """

    status_code = 429

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        provider: str | None = None,
        request_id: str | None = None,
        correlation_id: str | None = None,
    ):
        super().__init__(message, provider, request_id, correlation_id)
        self.retry_after = retry_after


class TimeoutError(LLMError):
    """Request exceeded timeout threshold."""

    pass


class InvalidRequestError(LLMError):
    """400 - Malformed request.

    Non-retryable. Examples: too many tokens, bad response_format.
    """

    status_code = 400


class ContentFilterError(LLMError):
    """Response blocked by safety filters."""

    pass


class ProviderError(LLMError):
    """5xx - Provider-side failure.

    Retryable. May be transient server issues.
    """

    pass


class ModelNotFoundError(LLMError):
    """404 - Model identifier not recognized."""

    status_code = 404


class MalformedResponseError(LLMError):
    """Completion was empty or could not be parsed into the expected JSON."""

    pass


def error_for_status(
    status_code: int,
    message: str,
    provider: str | None = None,
    request_id: str | None = None,
    retry_after: float | None = None,
) -> LLMError:
    """Map an upstream HTTP status to the matching LLMError instance."""
    if status_code in (401, 403):
        return AuthenticationError(message, provider=provider, request_id=request_id, status_code=status_code)
    if status_code == 402:
        return PaymentRequiredError(message, provider=provider, request_id=request_id)
    if status_code == 404:
        return ModelNotFoundError(message, provider=provider, request_id=request_id)
    if status_code == 429:
        return RateLimitError(message, retry_after=retry_after, provider=provider, request_id=request_id)
    if status_code == 400:
        lowered = message.lower()
        if "content_filter" in lowered or "safety" in lowered:
            return ContentFilterError(message, provider=provider, request_id=request_id, status_code=400)
        return InvalidRequestError(message, provider=provider, request_id=request_id)
    if status_code >= 500:
        return ProviderError(message, provider=provider, request_id=request_id, status_code=status_code)
    return LLMError(message, provider=provider, request_id=request_id, status_code=status_code)


# Error classification for retry logic
RETRYABLE_ERRORS = (RateLimitError, TimeoutError, ProviderError)
NON_RETRYABLE_ERRORS = (
    AuthenticationError,
    PaymentRequiredError,
    InvalidRequestError,
    ContentFilterError,
    ModelNotFoundError,
    MalformedResponseError,
)
