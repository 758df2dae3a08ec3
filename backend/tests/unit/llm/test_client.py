"""Unit tests for LLM client with retry logic.

Tests cover:
- Configuration from environment variables
- Calls to the default provider only
- Retry logic with exponential backoff
- Error propagation for non-retryable errors
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from memo_service.llm.client import LLMClient, get_client, set_client
from memo_service.llm.errors import (
    AuthenticationError,
    LLMError,
    PaymentRequiredError,
    ProviderError,
    RateLimitError,
)
from memo_service.llm.models import LLMRequest, LLMResponse, Usage


def create_mock_response(text: str = '{"ok": true}', provider: str = "openai") -> LLMResponse:
    """Create a mock LLMResponse for testing."""
    return LLMResponse(
        text=text,
        finish_reason="stop",
        usage=Usage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        model="test-model",
        provider=provider,
        latency_ms=100,
    )


def create_mock_provider(name: str, configured: bool = True) -> MagicMock:
    """Create a provider double with an async generate."""
    provider = MagicMock()
    provider.name = name
    provider.is_configured = configured
    provider.generate = AsyncMock(return_value=create_mock_response(provider=name))
    return provider


@pytest.fixture
def request_():
    return LLMRequest.from_prompts("system", "user", model="gpt-4o")


class TestLLMClientInit:
    """Tests for LLM client initialization."""

    def test_default_configuration(self, monkeypatch):
        for key in ("LLM_DEFAULT_PROVIDER", "LLM_TIMEOUT_SECONDS", "LLM_MAX_RETRIES"):
            monkeypatch.delenv(key, raising=False)

        client = LLMClient()

        assert client._default_provider == "openai"
        assert client._timeout == 90.0
        assert client._max_retries == 0

    def test_configuration_from_env(self, monkeypatch):
        monkeypatch.setenv("LLM_DEFAULT_PROVIDER", "anthropic")
        monkeypatch.setenv("LLM_TIMEOUT_SECONDS", "30")
        monkeypatch.setenv("LLM_MAX_RETRIES", "2")

        client = LLMClient()

        assert client._default_provider == "anthropic"
        assert client._timeout == 30.0
        assert client._max_retries == 2

    def test_is_configured_follows_default_provider(self):
        client = LLMClient(openai_api_key="key")
        assert client.is_configured() is True

    def test_not_configured_without_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        client = LLMClient()
        assert client.is_configured() is False

    def test_unknown_provider(self):
        client = LLMClient(openai_api_key="key")
        with pytest.raises(ValueError):
            client.get_provider("mystery")

    def test_singleton_can_be_replaced(self):
        replacement = LLMClient(openai_api_key="key")
        set_client(replacement)
        try:
            assert get_client() is replacement
        finally:
            set_client(None)


class TestLLMClientGenerate:
    """Tests for generate, as memo generation calls it."""

    @pytest.mark.asyncio
    async def test_success(self, request_):
        client = LLMClient(max_retries=0)
        openai = create_mock_provider("openai")

        with patch.object(client, "_providers", {"openai": openai, "anthropic": create_mock_provider("anthropic")}):
            response = await client.generate(request_)

        assert response.provider == "openai"
        openai.generate.assert_awaited_once_with(request_)

    @pytest.mark.asyncio
    async def test_uses_configured_default_provider(self, request_):
        client = LLMClient(default_provider="anthropic", max_retries=0)
        openai = create_mock_provider("openai")
        anthropic = create_mock_provider("anthropic")

        with patch.object(client, "_providers", {"openai": openai, "anthropic": anthropic}):
            response = await client.generate(request_)

        assert response.provider == "anthropic"
        openai.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rate_limit_not_retried_by_default(self, request_):
        client = LLMClient(max_retries=0)
        openai = create_mock_provider("openai")
        openai.generate.side_effect = RateLimitError("Too many requests")
        anthropic = create_mock_provider("anthropic")

        with patch.object(client, "_providers", {"openai": openai, "anthropic": anthropic}):
            with pytest.raises(RateLimitError):
                await client.generate(request_)

        assert openai.generate.await_count == 1
        anthropic.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_server_error_does_not_switch_provider(self, request_):
        client = LLMClient(max_retries=0)
        openai = create_mock_provider("openai")
        openai.generate.side_effect = ProviderError("Server error")
        anthropic = create_mock_provider("anthropic")

        with patch.object(client, "_providers", {"openai": openai, "anthropic": anthropic}):
            with pytest.raises(ProviderError):
                await client.generate(request_)

        anthropic.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_payment_required_propagates(self, request_):
        client = LLMClient(max_retries=0)
        openai = create_mock_provider("openai")
        openai.generate.side_effect = PaymentRequiredError("Credits exhausted")

        with patch.object(client, "_providers", {"openai": openai, "anthropic": create_mock_provider("anthropic")}):
            with pytest.raises(PaymentRequiredError):
                await client.generate(request_)

    @pytest.mark.asyncio
    async def test_default_provider_not_configured(self, request_):
        client = LLMClient()
        providers = {
            "openai": create_mock_provider("openai", configured=False),
            "anthropic": create_mock_provider("anthropic"),
        }

        with patch.object(client, "_providers", providers):
            with pytest.raises(LLMError, match="openai is not configured"):
                await client.generate(request_)

        providers["anthropic"].generate.assert_not_awaited()


class TestLLMClientRetry:
    """Tests for retry when configured."""

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, request_):
        client = LLMClient(max_retries=2)
        openai = create_mock_provider("openai")
        openai.generate.side_effect = [ProviderError("Server error"), create_mock_response()]

        with patch.object(client, "_providers", {"openai": openai, "anthropic": create_mock_provider("anthropic")}):
            with patch("memo_service.llm.client.asyncio.sleep", new=AsyncMock()) as sleep:
                response = await client.generate(request_)

        assert response.text == '{"ok": true}'
        assert openai.generate.await_count == 2
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, request_):
        client = LLMClient(max_retries=1)
        openai = create_mock_provider("openai")
        openai.generate.side_effect = ProviderError("Server error")

        with patch.object(client, "_providers", {"openai": openai, "anthropic": create_mock_provider("anthropic")}):
            with patch("memo_service.llm.client.asyncio.sleep", new=AsyncMock()):
                with pytest.raises(ProviderError):
                    await client.generate(request_)

        assert openai.generate.await_count == 2

    @pytest.mark.asyncio
    async def test_non_retryable_is_not_retried(self, request_):
        client = LLMClient(max_retries=2)
        openai = create_mock_provider("openai")
        openai.generate.side_effect = AuthenticationError("Bad key")
        anthropic = create_mock_provider("anthropic")

        with patch.object(client, "_providers", {"openai": openai, "anthropic": anthropic}):
            with pytest.raises(AuthenticationError):
                await client.generate(request_)

        assert openai.generate.await_count == 1
        anthropic.generate.assert_not_awaited()


class TestBackoff:
    """Tests for backoff calculation."""

    def test_honours_retry_after(self):
        client = LLMClient()
        assert client._calculate_backoff(0, RateLimitError("x", retry_after=7)) == 7

    def test_capped(self):
        client = LLMClient()
        assert client._calculate_backoff(10, ProviderError("x")) <= LLMClient.DEFAULT_MAX_DELAY
