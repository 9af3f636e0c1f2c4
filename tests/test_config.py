from skorbot.config import Settings
from skorbot.services.knowledge_base import FALLBACK_KNOWLEDGE_BASE, KnowledgeBase


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.web_debounce_seconds == 3.5
        assert settings.whatsapp_debounce_seconds == 8.0
        assert settings.history_cap == 20
        assert settings.llm_model == "google/gemini-2.0-flash-exp:free"

    def test_environment(self, mock_env):
        settings = Settings(_env_file=None)
        assert settings.llm_configured is True
        assert settings.database_url == "sqlite://"
        assert settings.meta_webhook_verify_token == "verify-me"

    def test_placeholder_key_is_not_configured(self):
        assert Settings(_env_file=None, openrouter_api_key="your_openrouter_api_key").llm_configured is False

    def test_cors_origins(self):
        assert Settings(_env_file=None, cors_allow_origins="https://a.example, https://b.example").cors_origins == [
            "https://a.example",
            "https://b.example",
        ]
        assert Settings(_env_file=None, cors_allow_origins=" ").cors_origins == ["*"]


class TestKnowledgeBase:
    def test_fallback_prompt(self):
        kb = KnowledgeBase()
        assert kb.content == FALLBACK_KNOWLEDGE_BASE
        assert kb.is_loaded is False

    def test_load_file(self, tmp_path):
        path = tmp_path / "kb.txt"
        path.write_text("Anda adalah asisten kredit.\n", encoding="utf-8")

        kb = KnowledgeBase()
        assert kb.load_file(str(path)) is True
        assert kb.content == "Anda adalah asisten kredit."
        assert kb.is_loaded is True

    def test_missing_file_keeps_prompt(self, tmp_path):
        kb = KnowledgeBase("lama")
        assert kb.load_file(str(tmp_path / "missing.txt")) is False
        assert kb.content == "lama"

    def test_empty_update_ignored(self):
        kb = KnowledgeBase("lama")
        assert kb.update("   ") is False
        assert kb.content == "lama"
