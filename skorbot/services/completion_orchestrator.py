"""One LLM turn: record user text, build knowledge + credit context, call the model, log both sides."""

import asyncio
import time
from dataclasses import dataclass
from typing import Optional

from skorbot.logging_config import get_logger
from skorbot.services.credit_context import ContextAssembler, CreditDataError
from skorbot.services.llm import LLMError, LLMProvider, LLMRateLimitError, LLMResponse, LLMTimeoutError
from skorbot.services.result import ErrorCode, Result
from skorbot.services.session_registry import ROLE_ASSISTANT, ROLE_SYSTEM, ROLE_USER, Session, SessionRegistry
from skorbot.services.transcript_logger import TranscriptWriter

logger = get_logger("completion")

MSG_CONFIG_DATABASE = "Maaf, konfigurasi database belum selesai."
MSG_CONFIG_LLM = "Maaf, konfigurasi AI admin belum selesai."
MSG_CREDIT_DATA_FAILURE = "Maaf, terjadi kesalahan saat mengambil data kredit Anda. Silakan coba lagi."
MSG_RATE_LIMITED = "Maaf, sistem sedang sibuk. Silakan coba lagi dalam beberapa saat."
MSG_TIMEOUT = "Maaf, respons AI membutuhkan waktu terlalu lama. Silakan coba lagi."
MSG_GENERIC_FAILURE = "Maaf, terjadi kesalahan saat memproses permintaan Anda."
MSG_EMPTY_COMPLETION = "Maaf, saya tidak bisa merespons saat ini."

FAILURE_MESSAGES = {
    ErrorCode.RATE_LIMITED: MSG_RATE_LIMITED,
    ErrorCode.LLM_TIMEOUT: MSG_TIMEOUT,
    ErrorCode.LLM_ERROR: MSG_GENERIC_FAILURE,
}

DEFAULT_LLM_TIMEOUT_SECONDS = 30.0


@dataclass
class Completion:
    response: LLMResponse
    latency_ms: int


def build_payload(session: Session, credit_context: str) -> list[dict]:
    """[knowledge base, credit context, *rest of history]. The knowledge base entry is reused as-is."""
    knowledge_base, *rest = session.history
    return [knowledge_base, {"role": ROLE_SYSTEM, "content": credit_context}, *rest]


class CompletionOrchestrator:
    def __init__(
        self,
        provider: Optional[LLMProvider],
        context_assembler: ContextAssembler,
        registry: SessionRegistry,
        transcripts: TranscriptWriter,
        *,
        model: str,
        timeout_seconds: float = DEFAULT_LLM_TIMEOUT_SECONDS,
    ):
        self.provider = provider
        self.context_assembler = context_assembler
        self.registry = registry
        self.transcripts = transcripts
        self.model = model
        self.timeout_seconds = timeout_seconds

    def configuration_error(self) -> Optional[str]:
        """User-facing apology when the service cannot run a turn at all."""
        if not self.context_assembler.store.is_configured():
            return MSG_CONFIG_DATABASE
        if self.provider is None:
            return MSG_CONFIG_LLM
        return None

    async def complete(self, session: Session, new_messages: list[str]) -> str:
        """Run one turn for the coalesced messages and return the text to deliver."""
        for text in new_messages:
            self.registry.append_turn(session.channel_key, ROLE_USER, text)
            self.transcripts.log_user_message(session.session_id, session.user_id, text)

        config_error = self.configuration_error()
        if config_error:
            logger.error(
                "Completion skipped, service not configured",
                extra={"context": {"channel_key": session.channel_key, "reason": config_error}},
            )
            self.transcripts.log_error_message(session.session_id, config_error)
            return config_error

        try:
            credit_context = await self.context_assembler.build_context(session.user_id)
        except CreditDataError as exc:
            logger.error(
                "Credit data unavailable for turn",
                extra={"context": {"channel_key": session.channel_key, "user_id": session.user_id, "error": str(exc)}},
            )
            self.transcripts.log_error_message(session.session_id, MSG_CREDIT_DATA_FAILURE)
            return MSG_CREDIT_DATA_FAILURE

        result = await self._call_llm(build_payload(session, credit_context))
        if not result.ok:
            message = FAILURE_MESSAGES.get(result.error_code, MSG_GENERIC_FAILURE)
            logger.error(
                f"Error generating AI response: {result.error}",
                extra={"context": {"channel_key": session.channel_key, "error_code": result.error_code.value}},
            )
            self.transcripts.log_error_message(session.session_id, message)
            return message

        completion = result.value
        response = completion.response
        if not response.has_content:
            logger.warning(
                "Completion had no usable text, sending fallback",
                extra={"context": {"channel_key": session.channel_key, "model": response.model}},
            )
            self.transcripts.log_error_message(session.session_id, MSG_EMPTY_COMPLETION)
            return MSG_EMPTY_COMPLETION

        text = response.content
        self.registry.append_turn(session.channel_key, ROLE_ASSISTANT, text)
        self.transcripts.log_assistant_message(
            session.session_id,
            text,
            ai_model=response.model,
            response_time_ms=completion.latency_ms,
            token_count=response.token_count,
        )
        logger.info(
            f"AI response generated in {completion.latency_ms}ms",
            extra={"context": {"channel_key": session.channel_key, "user_id": session.user_id}},
        )
        return text

    async def _call_llm(self, messages: list[dict]) -> Result[Completion]:
        started = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self.provider.generate(messages, model=self.model, timeout_seconds=self.timeout_seconds),
                timeout=self.timeout_seconds,
            )
        except LLMRateLimitError as exc:
            return Result.failure(str(exc), ErrorCode.RATE_LIMITED)
        except (LLMTimeoutError, asyncio.TimeoutError) as exc:
            return Result.failure(str(exc) or "LLM call timed out", ErrorCode.LLM_TIMEOUT)
        except LLMError as exc:
            return Result.failure(str(exc), ErrorCode.LLM_ERROR)
        except Exception as exc:
            logger.exception("Unexpected error from LLM provider")
            return Result.failure(str(exc), ErrorCode.LLM_ERROR)
        latency_ms = int(round((time.perf_counter() - started) * 1000))
        return Result.success(Completion(response=response, latency_ms=latency_ms))
