"""OpenAI-compatible provider implementation.

Talks to the Chat Completions API, either OpenAI itself or any gateway that
speaks the same protocol (set LLM_BASE_URL).
"""

import os
import time
from typing import Any

from openai import AsyncOpenAI, APIConnectionError, APIStatusError, APITimeoutError

from ..errors import (
    AuthenticationError,
    ProviderError,
    TimeoutError,
    error_for_status,
)
from ..models import LLMRequest, LLMResponse, Usage
from .base import LLMProvider


class OpenAIProvider(LLMProvider):
    """Chat Completions provider with JSON mode support."""

    SUPPORTED_FEATURES = {
        "json_object",
        "system_message",
    }

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 90.0,
        default_model: str = "gpt-4o",
        base_url: str | None = None,
    ):
        """Initialize provider.

        Args:
            api_key: API key. Defaults to OPENAI_API_KEY env var.
            timeout: Request timeout in seconds.
            default_model: Model used when the request leaves it empty.
            base_url: Gateway URL. Defaults to LLM_BASE_URL env var.
        """
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self._timeout = timeout
        self._default_model = default_model
        self._base_url = base_url or os.environ.get("LLM_BASE_URL") or None
        self._client: AsyncOpenAI | None = None

    @property
    def name(self) -> str:
        """Provider identifier."""
        return "openai"

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-initialized OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise AuthenticationError(
                    "OpenAI API key not configured. Set OPENAI_API_KEY environment variable.",
                    provider=self.name,
                )
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self._timeout,
            )
        return self._client

    def supports(self, feature: str) -> bool:
        """Check if feature is supported."""
        return feature in self.SUPPORTED_FEATURES

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Send a completion request.

        Raises:
            Various LLMError subclasses based on the error type.
        """
        start_time = time.perf_counter()
        openai_request = self._build_request(request)

        try:
            response = await self.client.chat.completions.create(**openai_request)
            latency_ms = int((time.perf_counter() - start_time) * 1000)
            return self._parse_response(response, latency_ms)

        except APITimeoutError as e:
            raise TimeoutError(
                f"OpenAI request timed out after {self._timeout}s",
                provider=self.name,
            ) from e

        except APIConnectionError as e:
            raise ProviderError(
                f"Failed to connect to OpenAI: {e}",
                provider=self.name,
            ) from e

        except APIStatusError as e:
            self._handle_api_error(e)

    def _build_request(self, request: LLMRequest) -> dict[str, Any]:
        """Convert LLMRequest to Chat Completions format."""
        openai_request: dict[str, Any] = {
            "model": request.model or self._default_model,
            "messages": [{"role": msg.role, "content": msg.content} for msg in request.messages],
            "temperature": request.temperature,
        }

        if request.max_tokens:
            openai_request["max_tokens"] = request.max_tokens

        # "text" is the default, no need to set
        if request.response_format and request.response_format.type == "json_object":
            openai_request["response_format"] = {"type": "json_object"}

        return openai_request

    def _parse_response(self, response: Any, latency_ms: int) -> LLMResponse:
        """Convert Chat Completions response to LLMResponse."""
        choice = response.choices[0]
        usage = response.usage

        return LLMResponse(
            text=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
            usage=Usage(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
            ),
            model=response.model,
            provider=self.name,
            latency_ms=latency_ms,
            request_id=response.id,
        )

    def _handle_api_error(self, error: APIStatusError) -> None:
        """Convert API status errors to LLMError types."""
        status_code = error.status_code
        message = str(error.message) if hasattr(error, "message") else str(error)
        request_id = getattr(error, "request_id", None)

        retry_after = None
        if status_code == 429 and getattr(error, "response", None) is not None:
            retry_after_str = error.response.headers.get("retry-after")
            if retry_after_str:
                try:
                    retry_after = float(retry_after_str)
                except ValueError:
                    pass

        raise error_for_status(
            status_code,
            f"OpenAI error ({status_code}): {message}",
            provider=self.name,
            request_id=request_id,
            retry_after=retry_after,
        ) from error
