from skorbot.services.llm.base import LLMError, LLMProvider, LLMRateLimitError, LLMResponse, LLMTimeoutError
from skorbot.services.llm.openrouter_provider import OpenRouterProvider

__all__ = [
    "LLMError",
    "LLMProvider",
    "LLMRateLimitError",
    "LLMResponse",
    "LLMTimeoutError",
    "OpenRouterProvider",
]
