"""
Abstract base class for language-model providers.

Executors talk to a model through ``LLMProvider.complete``. Implementations
raise ``AgentTimeoutError`` and ``ProviderConnectionError`` for transient
failures so the recovery policy can classify them as retry-eligible.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class LLMRequest:
    """One chat-completion request."""

    prompt: str
    system: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None

    def messages(self) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if self.system:
            messages.append({"role": "system", "content": self.system})
        messages.append({"role": "user", "content": self.prompt})
        return messages


@dataclass
class LLMResponse:
    """Model output and usage."""

    content: str
    model: str
    tokens_used: int = 0
    raw: dict[str, Any] = field(default_factory=dict)


class LLMProvider(ABC):
    """Abstract base class for language-model providers."""

    @abstractmethod
    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Run a completion.

        Raises:
            AgentTimeoutError: If the request timed out.
            ProviderConnectionError: If the provider is unreachable.
            AgentError: For any other provider failure.
        """

    async def close(self) -> None:
        """Release provider resources."""
