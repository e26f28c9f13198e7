"""Language-model providers used by the executors."""

from ai_dev_team.providers.base import LLMProvider, LLMRequest, LLMResponse
from ai_dev_team.providers.openai_compatible import OpenAICompatibleProvider

__all__ = ["LLMProvider", "LLMRequest", "LLMResponse", "OpenAICompatibleProvider"]
