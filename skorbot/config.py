from pydantic_settings import BaseSettings

PLACEHOLDER_API_KEY = "your_openrouter_api_key"


class Settings(BaseSettings):
    database_url: str = ""
    chat_logging_database_url: str = ""

    openrouter_api_key: str = ""
    openrouter_url: str = "https://openrouter.ai/api/v1/chat/completions"
    llm_model: str = "google/gemini-2.0-flash-exp:free"
    llm_timeout_seconds: float = 30.0

    web_debounce_seconds: float = 3.5
    whatsapp_debounce_seconds: float = 8.0
    history_cap: int = 20

    whatsapp_session_idle_minutes: int = 60
    session_sweep_interval_seconds: float = 300.0
    cleanup_enabled: bool = False
    cleanup_old_sessions_days: int = 30
    cleanup_interval_hours: float = 24.0

    meta_access_token: str = ""
    meta_phone_number_id: str = ""
    meta_webhook_verify_token: str = ""
    meta_app_secret: str = ""
    meta_api_version: str = "v21.0"
    whatsapp_country_code: str = "62"

    knowledge_base_path: str = ""

    log_level: str = "INFO"
    cors_allow_origins: str = "*"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def llm_configured(self) -> bool:
        key = self.openrouter_api_key.strip()
        return bool(key) and key != PLACEHOLDER_API_KEY

    @property
    def cors_origins(self) -> list[str]:
        origins = [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]
        return origins or ["*"]


settings = Settings()
