from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


class LLMError(Exception):
    """Completion request failed (network error, non-200 status, bad payload)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LLMRateLimitError(LLMError):
    """Provider answered 429."""


class LLMTimeoutError(LLMError):
    """Provider did not answer within the request timeout."""


@dataclass
class LLMResponse:
    content: Optional[str]
    model: str
    usage: Optional[dict] = None

    @property
    def has_content(self) -> bool:
        return bool(self.content and self.content.strip())

    @property
    def token_count(self) -> Optional[int]:
        if not self.usage:
            return None
        total = self.usage.get("total_tokens")
        return int(total) if isinstance(total, (int, float)) else None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> LLMResponse:
        """Generate a completion for role-tagged messages."""
        pass
