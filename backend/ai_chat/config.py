from __future__ import annotations

from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from project root (parent of backend/)
_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=str(_ENV_FILE), env_file_encoding="utf-8", extra="ignore")

    # App
    ENVIRONMENT: str = "dev"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    APP_VERSION: str = "0.1.0"

    # CORS
    CORS_ORIGINS: str = "*"

    # Supabase (identity, usage log, knowledge base)
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: SecretStr | None = None
    SUPABASE_JWT_SECRET: SecretStr | None = None
    SUPABASE_JWT_AUDIENCE: str = "authenticated"
    SUPABASE_TIMEOUT_SECONDS: float = 10.0
    USAGE_TABLE: str = "ai_usage_log"
    MATCH_DOCUMENTS_RPC: str = "match_documents"

    # LLM (Anthropic Messages API)
    ANTHROPIC_API_KEY: SecretStr | None = None
    ANTHROPIC_API_URL: str = "https://api.anthropic.com/v1/messages"
    ANTHROPIC_VERSION: str = "2023-06-01"
    LLM_MODEL: str = "claude-3-5-sonnet-20241022"
    LLM_MAX_TOKENS: int = 1024
    LLM_TIMEOUT_SECONDS: float = 60.0

    # RAG
    RETRIEVER_TOP_K: int = 5
    RETRIEVER_TIMEOUT_SECONDS: float = 10.0
    CONVERSATION_CONTEXT_MESSAGES: int = 10  # number of past turns forwarded upstream

    # Quota
    DAILY_QUERY_LIMIT: int = 50

    @property
    def llm_configured(self) -> bool:
        """True when an LLM provider credential is present."""
        return bool(self.ANTHROPIC_API_KEY and self.ANTHROPIC_API_KEY.get_secret_value())

    @property
    def supabase_configured(self) -> bool:
        """True when the identity/store endpoint and its privileged key are present."""
        return bool(
            self.SUPABASE_URL
            and self.SUPABASE_SERVICE_ROLE_KEY
            and self.SUPABASE_SERVICE_ROLE_KEY.get_secret_value()
        )


settings = Settings()
