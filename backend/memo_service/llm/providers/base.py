"""Abstract base class for LLM providers.

Defines the interface that all LLM providers must implement.
"""

from abc import ABC, abstractmethod

from ..models import LLMRequest, LLMResponse


class LLMProvider(ABC):
    """Base interface for LLM providers.

    All providers (OpenAI-compatible gateways, Anthropic) must implement this
    interface so the memo pipeline does not care which one answers.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier: 'openai', 'anthropic', etc."""
        ...

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when the provider has credentials to make a call."""
        ...

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Send a completion request and return the response.

        Args:
            request: Vendor-neutral LLM request.

        Returns:
            Vendor-neutral LLM response.

        Raises:
            AuthenticationError: Invalid or missing API key.
            PaymentRequiredError: Gateway credits exhausted.
            RateLimitError: Rate limit exceeded.
            TimeoutError: Request timed out.
            InvalidRequestError: Malformed request.
            ProviderError: Provider-side failure.
        """
        ...

    @abstractmethod
    def supports(self, feature: str) -> bool:
        """Check if provider supports a capability.

        Args:
            feature: Feature name, e.g. 'json_object' or 'system_message'.

        Returns:
            True if the feature is supported.
        """
        ...
