from typing import List, Optional

import httpx

from skorbot.logging_config import get_logger
from skorbot.services.llm.base import LLMError, LLMProvider, LLMRateLimitError, LLMResponse, LLMTimeoutError

logger = get_logger("llm.openrouter")

DEFAULT_OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


def extract_completion_text(data: object) -> Optional[str]:
    """Text of the first choice, or None when the payload is not a chat completion."""
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None


class OpenRouterProvider(LLMProvider):
    """OpenRouter chat completions provider (OpenAI-compatible API)."""

    def __init__(
        self,
        api_key: str,
        default_model: str,
        base_url: str = DEFAULT_OPENROUTER_URL,
        default_timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = base_url
        self.default_timeout_seconds = default_timeout_seconds
        self._transport = transport

    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> LLMResponse:
        """Generate response from OpenRouter."""

        model = model or self.default_model
        timeout = timeout_seconds if timeout_seconds is not None else self.default_timeout_seconds
        payload = {"model": model, "messages": messages}
        logger.debug(f"OpenRouter request: model={model}, messages_count={len(messages)}")

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.TimeoutException as exc:
            raise LLMTimeoutError(f"OpenRouter timed out after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise LLMError(f"OpenRouter request failed: {exc}") from exc

        logger.debug(f"OpenRouter response status: {response.status_code}")

        if response.status_code == 429:
            logger.warning(f"OpenRouter rate limited: {response.text[:200]}")
            raise LLMRateLimitError("OpenRouter rate limit exceeded", status_code=429)
        if response.status_code != 200:
            logger.error(f"OpenRouter error: {response.text[:500]}")
            raise LLMError(
                f"OpenRouter API error: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise LLMError("OpenRouter returned a non-JSON body", status_code=response.status_code) from exc

        content = extract_completion_text(data)
        if content is None:
            logger.warning("OpenRouter response has no choices[0].message.content")

        usage = data.get("usage") if isinstance(data, dict) else None
        return LLMResponse(
            content=content,
            model=(data.get("model") if isinstance(data, dict) else None) or model,
            usage=usage if isinstance(usage, dict) else None,
        )
