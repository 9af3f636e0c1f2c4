import json

import httpx
import pytest

from skorbot.services.llm import LLMError, LLMRateLimitError, LLMResponse, LLMTimeoutError, OpenRouterProvider
from skorbot.services.llm.openrouter_provider import extract_completion_text

MESSAGES = [{"role": "system", "content": "kb"}, {"role": "user", "content": "halo"}]


def make_provider(handler) -> OpenRouterProvider:
    return OpenRouterProvider(
        api_key="test-key",
        default_model="google/gemini-2.0-flash-exp:free",
        transport=httpx.MockTransport(handler),
    )


class TestExtractCompletionText:
    def test_first_choice_content(self):
        data = {"choices": [{"message": {"content": "Halo!"}}, {"message": {"content": "ignored"}}]}
        assert extract_completion_text(data) == "Halo!"

    @pytest.mark.parametrize(
        "data",
        [None, [], {}, {"choices": []}, {"choices": ["x"]}, {"choices": [{"message": None}]}, {"choices": [{"message": {"content": 5}}]}],
    )
    def test_malformed_payloads(self, data):
        assert extract_completion_text(data) is None


class TestGenerate:
    @pytest.mark.asyncio
    async def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "model": "google/gemini-2.0-flash-exp:free",
                    "choices": [{"message": {"role": "assistant", "content": "Skor Anda 720."}}],
                    "usage": {"prompt_tokens": 80, "completion_tokens": 20, "total_tokens": 100},
                },
            )

        response = await make_provider(handler).generate(MESSAGES)

        assert isinstance(response, LLMResponse)
        assert response.content == "Skor Anda 720."
        assert response.token_count == 100
        assert seen["auth"] == "Bearer test-key"
        assert seen["body"] == {"model": "google/gemini-2.0-flash-exp:free", "messages": MESSAGES}

    @pytest.mark.asyncio
    async def test_model_override(self):
        def handler(request):
            return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

        response = await make_provider(handler).generate(MESSAGES, model="other/model")
        assert response.model == "other/model"
        assert response.token_count is None

    @pytest.mark.asyncio
    async def test_missing_content_is_not_an_error(self):
        def handler(request):
            return httpx.Response(200, json={"choices": []})

        response = await make_provider(handler).generate(MESSAGES)
        assert response.content is None
        assert response.has_content is False

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        def handler(request):
            return httpx.Response(429, json={"error": "rate limited"})

        with pytest.raises(LLMRateLimitError) as exc_info:
            await make_provider(handler).generate(MESSAGES)
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_server_error(self):
        def handler(request):
            return httpx.Response(502, text="bad gateway")

        with pytest.raises(LLMError) as exc_info:
            await make_provider(handler).generate(MESSAGES)
        assert not isinstance(exc_info.value, LLMRateLimitError)
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(LLMTimeoutError):
            await make_provider(handler).generate(MESSAGES)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(LLMError):
            await make_provider(handler).generate(MESSAGES)

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(LLMError):
            await make_provider(handler).generate(MESSAGES)
