"""LLM data models.

Vendor-neutral request and response models. Memo generation and the quality
checks only ever send a system prompt, a user prompt and a model name, and
ask for a JSON object back.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """A single message in the conversation."""

    role: Literal["system", "user", "assistant"]
    content: str


class ResponseFormat(BaseModel):
    """Structured output format configuration."""

    type: Literal["text", "json_object"]


class LLMRequest(BaseModel):
    """Vendor-neutral LLM request."""

    messages: list[ChatMessage]
    model: str
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int | None = None
    response_format: ResponseFormat | None = None
    metadata: dict[str, Any] | None = None

    @classmethod
    def from_prompts(
        cls,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        json_output: bool = True,
    ) -> "LLMRequest":
        """Build the two-message request every caller in this service uses."""
        return cls(
            messages=[
                ChatMessage(role="system", content=system_prompt),
                ChatMessage(role="user", content=user_prompt),
            ],
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            response_format=ResponseFormat(type="json_object") if json_output else None,
        )


class Usage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class LLMResponse(BaseModel):
    """Vendor-neutral LLM response."""

    text: str | None
    finish_reason: str
    usage: Usage
    model: str
    provider: str
    latency_ms: int
    request_id: str | None = None
