"""Unit tests for the Anthropic provider."""

from unittest.mock import MagicMock

import pytest

from memo_service.llm.errors import PaymentRequiredError, RateLimitError
from memo_service.llm.models import LLMRequest
from memo_service.llm.providers.anthropic import JSON_ONLY_INSTRUCTION, AnthropicProvider


class FakeAPIStatusError(Exception):
    """Fake API error for testing exception chaining."""

    def __init__(self, status_code: int, message: str, response=None, request_id=None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.response = response
        self.request_id = request_id


class TestAnthropicRequestBuilding:
    """Tests for Anthropic request building."""

    def test_system_prompt_is_top_level(self):
        provider = AnthropicProvider(api_key="test-key")
        request = LLMRequest.from_prompts("Be an analyst.", "Write.", model="claude-test", json_output=False)

        anthropic_request = provider._build_request(request)

        assert anthropic_request["system"] == "Be an analyst."
        assert [m["role"] for m in anthropic_request["messages"]] == ["user"]
        assert anthropic_request["max_tokens"] == 4096

    def test_json_mode_adds_instruction(self):
        provider = AnthropicProvider(api_key="test-key")
        request = LLMRequest.from_prompts("Be an analyst.", "Write.", model="claude-test")

        anthropic_request = provider._build_request(request)

        assert anthropic_request["system"].endswith(JSON_ONLY_INSTRUCTION)

    def test_temperature_capped(self):
        provider = AnthropicProvider(api_key="test-key")
        request = LLMRequest.from_prompts("s", "u", model="claude-test", temperature=1.6)

        assert provider._build_request(request)["temperature"] == 1.0


class TestAnthropicResponseParsing:
    """Tests for Anthropic response parsing."""

    def test_parse_text_blocks(self):
        provider = AnthropicProvider(api_key="test-key")
        block = MagicMock()
        block.type = "text"
        block.text = '{"verdict": "Pass"}'
        response = MagicMock()
        response.id = "msg_1"
        response.model = "claude-test"
        response.content = [block]
        response.stop_reason = "max_tokens"
        response.usage.input_tokens = 20
        response.usage.output_tokens = 7

        parsed = provider._parse_response(response, latency_ms=50)

        assert parsed.text == '{"verdict": "Pass"}'
        assert parsed.finish_reason == "length"
        assert parsed.usage.total_tokens == 27


class TestAnthropicErrorHandling:
    """Tests for Anthropic error handling."""

    def test_handle_429_error(self):
        provider = AnthropicProvider(api_key="test-key")
        mock_response = MagicMock()
        mock_response.headers = {"retry-after": "12"}
        error = FakeAPIStatusError(status_code=429, message="Slow down", response=mock_response)

        with pytest.raises(RateLimitError) as exc_info:
            provider._handle_api_error(error)

        assert exc_info.value.retry_after == 12.0
        assert exc_info.value.provider == "anthropic"

    def test_handle_402_error(self):
        provider = AnthropicProvider(api_key="test-key")
        error = FakeAPIStatusError(status_code=402, message="Credit balance too low")

        with pytest.raises(PaymentRequiredError):
            provider._handle_api_error(error)
