from dataclasses import dataclass
from typing import Optional

from skorbot.config import Settings
from skorbot.database import build_session_factory
from skorbot.logging_config import get_logger
from skorbot.services.completion_orchestrator import CompletionOrchestrator
from skorbot.services.conversation_service import ConversationService
from skorbot.services.credit_context import ContextAssembler, CreditDataStore
from skorbot.services.knowledge_base import KnowledgeBase
from skorbot.services.llm import LLMProvider, OpenRouterProvider
from skorbot.services.session_registry import SessionRegistry
from skorbot.services.transcript_logger import TranscriptLogger, TranscriptWriter
from skorbot.services.whatsapp_service import MetaWhatsAppClient

logger = get_logger("runtime")


@dataclass
class ChatRuntime:
    settings: Settings
    knowledge_base: KnowledgeBase
    credit_store: CreditDataStore
    transcript_store: TranscriptLogger
    transcripts: TranscriptWriter
    registry: SessionRegistry
    orchestrator: CompletionOrchestrator
    whatsapp: MetaWhatsAppClient
    conversations: ConversationService

    def config_status(self) -> dict:
        webhook = {
            "access_token": bool(self.settings.meta_access_token),
            "phone_number_id": bool(self.settings.meta_phone_number_id),
            "verify_token": bool(self.settings.meta_webhook_verify_token),
            "app_secret": bool(self.settings.meta_app_secret),
        }
        webhook["is_configured"] = all(webhook.values())
        ai = {
            "openrouter_api_key": self.settings.llm_configured,
            "database_url": self.credit_store.is_configured(),
            "knowledge_base_loaded": self.knowledge_base.is_loaded,
            "chat_logging_enabled": self.transcript_store.is_enabled(),
        }
        ai["is_configured"] = ai["openrouter_api_key"] and ai["database_url"]
        return {
            "webhook": webhook,
            "ai": ai,
            "sessions": self.registry.stats(),
            "is_fully_configured": webhook["is_configured"] and ai["is_configured"],
        }

    async def aclose(self) -> None:
        await self.conversations.aclose()
        await self.transcripts.aclose()


def build_runtime(
    settings: Settings,
    *,
    credit_store: Optional[CreditDataStore] = None,
    transcript_store: Optional[TranscriptLogger] = None,
    provider: Optional[LLMProvider] = None,
    whatsapp: Optional[MetaWhatsAppClient] = None,
) -> ChatRuntime:
    """Wire every component from settings. Collaborators can be swapped (tests, alternative stores)."""
    knowledge_base = KnowledgeBase()
    if settings.knowledge_base_path:
        knowledge_base.load_file(settings.knowledge_base_path)

    if credit_store is None:
        credit_store = CreditDataStore(build_session_factory(settings.database_url))
    if transcript_store is None:
        transcript_store = TranscriptLogger(build_session_factory(settings.chat_logging_database_url))
    if provider is None and settings.llm_configured:
        provider = OpenRouterProvider(
            api_key=settings.openrouter_api_key,
            default_model=settings.llm_model,
            base_url=settings.openrouter_url,
            default_timeout_seconds=settings.llm_timeout_seconds,
        )
    if whatsapp is None:
        whatsapp = MetaWhatsAppClient(
            settings.meta_access_token,
            settings.meta_phone_number_id,
            api_version=settings.meta_api_version,
        )

    transcripts = TranscriptWriter(transcript_store)
    registry = SessionRegistry(transcripts, knowledge_base, history_cap=settings.history_cap)
    orchestrator = CompletionOrchestrator(
        provider,
        ContextAssembler(credit_store),
        registry,
        transcripts,
        model=settings.llm_model,
        timeout_seconds=settings.llm_timeout_seconds,
    )
    conversations = ConversationService(
        registry,
        orchestrator,
        credit_store,
        transcripts,
        whatsapp,
        web_debounce_seconds=settings.web_debounce_seconds,
        whatsapp_debounce_seconds=settings.whatsapp_debounce_seconds,
        whatsapp_country_code=settings.whatsapp_country_code,
    )

    if not credit_store.is_configured():
        logger.warning("DATABASE_URL is not set, credit data operations will fail")
    if not transcript_store.is_enabled():
        logger.warning("Chat logging is disabled (CHAT_LOGGING_DATABASE_URL not configured)")
    if provider is None:
        logger.warning("OpenRouter API key not configured")

    return ChatRuntime(
        settings=settings,
        knowledge_base=knowledge_base,
        credit_store=credit_store,
        transcript_store=transcript_store,
        transcripts=transcripts,
        registry=registry,
        orchestrator=orchestrator,
        whatsapp=whatsapp,
        conversations=conversations,
    )
