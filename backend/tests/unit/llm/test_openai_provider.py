"""Unit tests for the OpenAI-compatible provider.

Tests cover:
- Request building (JSON mode, max tokens, default model)
- Response parsing
- Error mapping, including the upstream status in messages
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from memo_service.llm.errors import (
    AuthenticationError,
    ContentFilterError,
    InvalidRequestError,
    LLMError,
    ModelNotFoundError,
    PaymentRequiredError,
    ProviderError,
    RateLimitError,
)
from memo_service.llm.models import ChatMessage, LLMRequest
from memo_service.llm.providers.openai import OpenAIProvider


class FakeAPIStatusError(Exception):
    """Fake API error for testing exception chaining."""

    def __init__(self, status_code: int, message: str, response=None, request_id=None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.response = response
        self.request_id = request_id


def make_completion(content="{}", finish_reason="stop", usage=True):
    """Build a Chat Completions response double."""
    response = MagicMock()
    response.id = "chatcmpl-123"
    response.model = "gpt-4o"
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.choices[0].finish_reason = finish_reason
    if usage:
        response.usage.prompt_tokens = 10
        response.usage.completion_tokens = 5
        response.usage.total_tokens = 15
    else:
        response.usage = None
    return response


class TestOpenAIProviderInit:
    """Tests for OpenAI provider initialization."""

    def test_provider_name(self):
        provider = OpenAIProvider(api_key="test-key")
        assert provider.name == "openai"

    def test_default_model(self):
        provider = OpenAIProvider(api_key="test-key")
        assert provider._default_model == "gpt-4o"

    def test_base_url_from_env(self, monkeypatch):
        monkeypatch.setenv("LLM_BASE_URL", "https://gateway.example.com/v1")
        provider = OpenAIProvider(api_key="test-key")
        assert provider._base_url == "https://gateway.example.com/v1"

    def test_not_configured_without_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        provider = OpenAIProvider()
        assert provider.is_configured is False

    def test_client_requires_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        provider = OpenAIProvider()
        with pytest.raises(AuthenticationError):
            provider.client

    def test_supports_json_object(self):
        provider = OpenAIProvider(api_key="test-key")
        assert provider.supports("json_object") is True
        assert provider.supports("tools") is False


class TestOpenAIRequestBuilding:
    """Tests for OpenAI request building."""

    def test_json_mode(self):
        provider = OpenAIProvider(api_key="test-key")
        request = LLMRequest.from_prompts("system", "user", model="gpt-4o", max_tokens=3000)

        openai_request = provider._build_request(request)

        assert openai_request["response_format"] == {"type": "json_object"}
        assert openai_request["max_tokens"] == 3000
        assert [m["role"] for m in openai_request["messages"]] == ["system", "user"]

    def test_text_mode(self):
        provider = OpenAIProvider(api_key="test-key")
        request = LLMRequest.from_prompts("system", "user", model="gpt-4o", json_output=False)

        openai_request = provider._build_request(request)

        assert "response_format" not in openai_request
        assert "max_tokens" not in openai_request

    def test_uses_default_model(self):
        provider = OpenAIProvider(api_key="test-key", default_model="gpt-4o-mini")
        request = LLMRequest(messages=[ChatMessage(role="user", content="Hello")], model="")

        assert provider._build_request(request)["model"] == "gpt-4o-mini"


class TestOpenAIResponseParsing:
    """Tests for OpenAI response parsing."""

    def test_parse_text_response(self):
        provider = OpenAIProvider(api_key="test-key")

        response = provider._parse_response(make_completion('{"a": 1}'), latency_ms=100)

        assert response.text == '{"a": 1}'
        assert response.finish_reason == "stop"
        assert response.provider == "openai"
        assert response.latency_ms == 100
        assert response.usage.total_tokens == 15
        assert response.request_id == "chatcmpl-123"

    def test_parse_without_usage(self):
        provider = OpenAIProvider(api_key="test-key")

        response = provider._parse_response(make_completion(usage=False), latency_ms=1)

        assert response.usage.total_tokens == 0

    @pytest.mark.asyncio
    async def test_generate_calls_chat_completions(self):
        provider = OpenAIProvider(api_key="test-key")
        mock_client = MagicMock()
        mock_client.chat.completions.create = AsyncMock(return_value=make_completion('{"ok": true}'))
        provider._client = mock_client

        response = await provider.generate(LLMRequest.from_prompts("s", "u", model="gpt-4o"))

        assert response.text == '{"ok": true}'
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"


class TestOpenAIErrorHandling:
    """Tests for OpenAI error handling."""

    def test_handle_401_error(self):
        provider = OpenAIProvider(api_key="test-key")
        error = FakeAPIStatusError(status_code=401, message="Invalid API key")

        with pytest.raises(AuthenticationError) as exc_info:
            provider._handle_api_error(error)

        assert exc_info.value.provider == "openai"
        assert exc_info.value.__cause__ is error

    def test_handle_402_error(self):
        provider = OpenAIProvider(api_key="test-key")
        error = FakeAPIStatusError(status_code=402, message="Payment required")

        with pytest.raises(PaymentRequiredError) as exc_info:
            provider._handle_api_error(error)

        assert exc_info.value.status_code == 402

    def test_handle_404_error(self):
        provider = OpenAIProvider(api_key="test-key")
        error = FakeAPIStatusError(status_code=404, message="Model not found")

        with pytest.raises(ModelNotFoundError):
            provider._handle_api_error(error)

    def test_handle_429_error(self):
        provider = OpenAIProvider(api_key="test-key")
        mock_response = MagicMock()
        mock_response.headers = {"retry-after": "30"}
        error = FakeAPIStatusError(status_code=429, message="Rate limit exceeded", response=mock_response)

        with pytest.raises(RateLimitError) as exc_info:
            provider._handle_api_error(error)

        assert exc_info.value.retry_after == 30.0
        assert exc_info.value.message == "OpenAI error (429): Rate limit exceeded"
        assert exc_info.value.__cause__ is error

    def test_handle_429_error_without_retry_after(self):
        provider = OpenAIProvider(api_key="test-key")
        mock_response = MagicMock()
        mock_response.headers = {}
        error = FakeAPIStatusError(status_code=429, message="Rate limit exceeded", response=mock_response)

        with pytest.raises(RateLimitError) as exc_info:
            provider._handle_api_error(error)

        assert exc_info.value.retry_after is None

    def test_handle_400_error(self):
        provider = OpenAIProvider(api_key="test-key")
        error = FakeAPIStatusError(status_code=400, message="Invalid request parameters")

        with pytest.raises(InvalidRequestError):
            provider._handle_api_error(error)

    def test_handle_content_filter_error(self):
        provider = OpenAIProvider(api_key="test-key")
        error = FakeAPIStatusError(status_code=400, message="Content blocked by safety filter")

        with pytest.raises(ContentFilterError):
            provider._handle_api_error(error)

    def test_handle_500_error(self):
        provider = OpenAIProvider(api_key="test-key")
        error = FakeAPIStatusError(status_code=503, message="Service unavailable")

        with pytest.raises(ProviderError) as exc_info:
            provider._handle_api_error(error)

        assert exc_info.value.status_code == 503

    def test_handle_unmapped_status(self):
        provider = OpenAIProvider(api_key="test-key")
        error = FakeAPIStatusError(status_code=409, message="Conflict")

        with pytest.raises(LLMError) as exc_info:
            provider._handle_api_error(error)

        assert exc_info.value.status_code == 409
