"""High-level LLM client with optional retry.

Calls go to the default provider only. Memo generation runs with retries
off, so a failed call fails the job. Retries with backoff apply when
LLM_MAX_RETRIES is set.
"""

import asyncio
import logging
import os
import random
import uuid

from .errors import (
    LLMError,
    NON_RETRYABLE_ERRORS,
    RateLimitError,
    RETRYABLE_ERRORS,
)
from .models import LLMRequest, LLMResponse
from .providers.anthropic import AnthropicProvider
from .providers.base import LLMProvider
from .providers.openai import OpenAIProvider

logger = logging.getLogger(__name__)


class LLMClient:
    """High-level LLM client.

    Configuration (env vars):
    - LLM_DEFAULT_PROVIDER: Default provider (default: "openai")
    - LLM_TIMEOUT_SECONDS: Request timeout (default: 90)
    - LLM_MAX_RETRIES: Max retries per provider (default: 0)
    """

    DEFAULT_PROVIDER = "openai"
    DEFAULT_TIMEOUT = 90.0
    DEFAULT_MAX_RETRIES = 0
    DEFAULT_BASE_DELAY = 1.0  # Base delay for exponential backoff
    DEFAULT_MAX_DELAY = 30.0  # Maximum delay between retries

    def __init__(
        self,
        default_provider: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        openai_api_key: str | None = None,
        anthropic_api_key: str | None = None,
    ):
        """Initialize LLM client.

        Args:
            default_provider: Primary provider name. Defaults to LLM_DEFAULT_PROVIDER env var.
            timeout: Request timeout in seconds. Defaults to LLM_TIMEOUT_SECONDS env var.
            max_retries: Max retries per provider. Defaults to LLM_MAX_RETRIES env var.
            openai_api_key: OpenAI API key. Defaults to OPENAI_API_KEY env var.
            anthropic_api_key: Anthropic API key. Defaults to ANTHROPIC_API_KEY env var.
        """
        self._default_provider = (
            default_provider
            or os.environ.get("LLM_DEFAULT_PROVIDER", self.DEFAULT_PROVIDER)
        )
        self._timeout = (
            timeout
            if timeout is not None
            else float(os.environ.get("LLM_TIMEOUT_SECONDS", self.DEFAULT_TIMEOUT))
        )
        self._max_retries = (
            max_retries
            if max_retries is not None
            else int(os.environ.get("LLM_MAX_RETRIES", self.DEFAULT_MAX_RETRIES))
        )

        self._providers: dict[str, LLMProvider] = {
            "openai": OpenAIProvider(api_key=openai_api_key, timeout=self._timeout),
            "anthropic": AnthropicProvider(api_key=anthropic_api_key, timeout=self._timeout),
        }

    def get_provider(self, name: str) -> LLMProvider:
        """Get a specific provider by name.

        Raises:
            ValueError: If provider name is not recognized.
        """
        if name not in self._providers:
            raise ValueError(f"Unknown provider: {name}. Available: {list(self._providers.keys())}")
        return self._providers[name]

    def is_provider_available(self, name: str) -> bool:
        """Check if a provider is known and has credentials."""
        if name not in self._providers:
            return False
        return self._providers[name].is_configured

    def is_configured(self) -> bool:
        """True when the default provider can make calls."""
        return self.is_provider_available(self._default_provider)

    async def generate(
        self,
        request: LLMRequest,
        correlation_id: str | None = None,
    ) -> LLMResponse:
        """Generate a completion with the default provider.

        Args:
            request: LLM request to send.
            correlation_id: Optional ID for tracking across retry attempts.

        Returns:
            LLM response from the provider.

        Raises:
            LLMError: If the provider is not configured or the call fails.
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        provider_name = self._default_provider

        if not self.is_provider_available(provider_name):
            raise LLMError(
                f"Provider {provider_name} is not configured",
                provider=provider_name,
                correlation_id=correlation_id,
            )

        try:
            return await self._generate_with_retry(
                request=request,
                provider_name=provider_name,
                correlation_id=correlation_id,
            )

        except NON_RETRYABLE_ERRORS as e:
            logger.error(
                "Provider %s failed with non-retryable error: %s",
                provider_name,
                str(e),
                extra={
                    "correlation_id": correlation_id,
                    "provider": provider_name,
                    "error_type": type(e).__name__,
                },
            )
            raise

    async def _generate_with_retry(
        self,
        request: LLMRequest,
        provider_name: str,
        correlation_id: str,
    ) -> LLMResponse:
        """Generate with retry logic for a single provider."""
        provider = self.get_provider(provider_name)
        last_error: LLMError | None = None

        for attempt in range(self._max_retries + 1):
            try:
                logger.debug(
                    "Attempting request to %s (attempt %d/%d)",
                    provider_name,
                    attempt + 1,
                    self._max_retries + 1,
                    extra={"correlation_id": correlation_id, "provider": provider_name},
                )

                response = await provider.generate(request)

                logger.info(
                    "LLM request succeeded",
                    extra={
                        "correlation_id": correlation_id,
                        "provider": response.provider,
                        "model": response.model,
                        "latency_ms": response.latency_ms,
                        "prompt_tokens": response.usage.prompt_tokens,
                        "completion_tokens": response.usage.completion_tokens,
                    },
                )
                return response

            except RETRYABLE_ERRORS as e:
                last_error = e
                e.correlation_id = correlation_id

                logger.warning(
                    "Retryable error on attempt %d/%d: %s",
                    attempt + 1,
                    self._max_retries + 1,
                    str(e),
                    extra={
                        "correlation_id": correlation_id,
                        "provider": provider_name,
                        "error_type": type(e).__name__,
                    },
                )

                if attempt < self._max_retries:
                    await asyncio.sleep(self._calculate_backoff(attempt, e))

        if last_error:
            raise last_error

        raise LLMError(
            f"Provider {provider_name} failed after {self._max_retries + 1} attempts",
            provider=provider_name,
            correlation_id=correlation_id,
        )

    def _calculate_backoff(self, attempt: int, error: Exception) -> float:
        """Exponential backoff with ±25% jitter, honouring retry-after."""
        if isinstance(error, RateLimitError) and error.retry_after:
            return min(error.retry_after, self.DEFAULT_MAX_DELAY)

        base_delay = self.DEFAULT_BASE_DELAY * (2 ** attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return min(base_delay + jitter, self.DEFAULT_MAX_DELAY)


_default_client: LLMClient | None = None


def get_client() -> LLMClient:
    """Get the default LLM client singleton."""
    global _default_client
    if _default_client is None:
        _default_client = LLMClient()
    return _default_client


def set_client(client: LLMClient | None) -> None:
    """Set the default client (for testing)."""
    global _default_client
    _default_client = client
