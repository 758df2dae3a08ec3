"""Anthropic provider implementation.

Implements the LLMProvider interface for Anthropic's Messages API.
Anthropic has no JSON mode, so json_object requests get an extra system
instruction and the completion is parsed downstream like any other.
"""

import os
import time
from typing import Any

from anthropic import (
    AsyncAnthropic,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
)

from ..errors import (
    AuthenticationError,
    ProviderError,
    TimeoutError,
    error_for_status,
)
from ..models import LLMRequest, LLMResponse, Usage
from .base import LLMProvider

JSON_ONLY_INSTRUCTION = (
    "Respond with a single valid JSON object only. "
    "Do not wrap it in markdown code fences and do not add commentary."
)


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API provider."""

    SUPPORTED_FEATURES = {
        "json_object",  # Via system instruction
        "system_message",
    }

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 90.0,
        default_model: str = "claude-sonnet-4-5-20250929",
    ):
        """Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key. Defaults to ANTHROPIC_API_KEY env var.
            timeout: Request timeout in seconds.
            default_model: Default model to use if not specified in request.
        """
        self._api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self._timeout = timeout
        self._default_model = default_model
        self._client: AsyncAnthropic | None = None

    @property
    def name(self) -> str:
        """Provider identifier."""
        return "anthropic"

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    @property
    def client(self) -> AsyncAnthropic:
        """Lazy-initialized Anthropic client."""
        if self._client is None:
            if not self._api_key:
                raise AuthenticationError(
                    "Anthropic API key not configured. Set ANTHROPIC_API_KEY environment variable.",
                    provider=self.name,
                )
            self._client = AsyncAnthropic(api_key=self._api_key, timeout=self._timeout)
        return self._client

    def supports(self, feature: str) -> bool:
        """Check if feature is supported."""
        return feature in self.SUPPORTED_FEATURES

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Send a completion request to Anthropic."""
        start_time = time.perf_counter()
        anthropic_request = self._build_request(request)

        try:
            response = await self.client.messages.create(**anthropic_request)
            latency_ms = int((time.perf_counter() - start_time) * 1000)
            return self._parse_response(response, latency_ms)

        except APITimeoutError as e:
            raise TimeoutError(
                f"Anthropic request timed out after {self._timeout}s",
                provider=self.name,
            ) from e

        except APIConnectionError as e:
            raise ProviderError(
                f"Failed to connect to Anthropic: {e}",
                provider=self.name,
            ) from e

        except APIStatusError as e:
            self._handle_api_error(e)

    def _build_request(self, request: LLMRequest) -> dict[str, Any]:
        """Convert LLMRequest to Anthropic API format."""
        # Anthropic takes system as a top-level parameter
        system_parts = [msg.content for msg in request.messages if msg.role == "system"]
        messages = [
            {"role": msg.role, "content": msg.content}
            for msg in request.messages
            if msg.role != "system"
        ]

        if request.response_format and request.response_format.type == "json_object":
            system_parts.append(JSON_ONLY_INSTRUCTION)

        anthropic_request: dict[str, Any] = {
            "model": request.model or self._default_model,
            "messages": messages,
            "max_tokens": request.max_tokens or 4096,
            # Anthropic uses 0-1 range, we use 0-2
            "temperature": min(request.temperature, 1.0),
        }

        if system_parts:
            anthropic_request["system"] = "\n\n".join(system_parts)

        return anthropic_request

    def _parse_response(self, response: Any, latency_ms: int) -> LLMResponse:
        """Convert Anthropic response to LLMResponse."""
        text_parts = [block.text for block in response.content if block.type == "text"]
        text = "\n".join(text_parts) if text_parts else None

        finish_reason_map = {
            "end_turn": "stop",
            "max_tokens": "length",
            "stop_sequence": "stop",
        }
        finish_reason = finish_reason_map.get(response.stop_reason, response.stop_reason or "stop")

        return LLMResponse(
            text=text,
            finish_reason=finish_reason,
            usage=Usage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            ),
            model=response.model,
            provider=self.name,
            latency_ms=latency_ms,
            request_id=response.id,
        )

    def _handle_api_error(self, error: APIStatusError) -> None:
        """Convert Anthropic API errors to LLMError types."""
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
            f"Anthropic error ({status_code}): {message}",
            provider=self.name,
            request_id=request_id,
            retry_after=retry_after,
        ) from error
