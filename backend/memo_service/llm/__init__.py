"""LLM provider abstraction layer.

This module provides a vendor-neutral interface for calling the AI completion
service (OpenAI-compatible gateways, Anthropic) and for parsing its JSON output.
"""

from .client import LLMClient, get_client, set_client
from .errors import (
    AuthenticationError,
    ContentFilterError,
    InvalidRequestError,
    LLMError,
    MalformedResponseError,
    PaymentRequiredError,
    ProviderError,
    RateLimitError,
    TimeoutError,
)
from .models import ChatMessage, LLMRequest, LLMResponse, ResponseFormat, Usage
from .parsing import parse_json_object

__all__ = [
    "LLMClient",
    "get_client",
    "set_client",
    "LLMRequest",
    "LLMResponse",
    "ChatMessage",
    "ResponseFormat",
    "Usage",
    "LLMError",
    "AuthenticationError",
    "PaymentRequiredError",
    "RateLimitError",
    "TimeoutError",
    "InvalidRequestError",
    "ContentFilterError",
    "ProviderError",
    "MalformedResponseError",
    "parse_json_object",
]
