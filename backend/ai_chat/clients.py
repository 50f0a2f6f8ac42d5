from __future__ import annotations

import httpx
import structlog

from ai_chat.backends.anthropic import AnthropicProvider
from ai_chat.backends.base import IdentityProvider
from ai_chat.backends.jwt import JwtIdentityProvider
from ai_chat.backends.supabase import (
    SupabaseIdentityProvider,
    SupabaseKnowledgeBackend,
    SupabaseUsageStore,
    build_supabase_client,
)
from ai_chat.config import Settings, settings
from ai_chat.pipelines.chat import ChatPipeline, PipelineConfig

logger = structlog.get_logger()

_supabase_client: httpx.AsyncClient | None = None
_llm_client: httpx.AsyncClient | None = None


def get_supabase_client(config: Settings = settings) -> httpx.AsyncClient:
    """Get or create the singleton Supabase HTTP client.

    Returns:
        The shared AsyncClient carrying the service-role headers. Created on
        first call and reused on subsequent calls (singleton pattern).
    """
    global _supabase_client
    if _supabase_client is None:
        service_key = config.SUPABASE_SERVICE_ROLE_KEY
        _supabase_client = build_supabase_client(
            url=config.SUPABASE_URL,
            service_key=service_key.get_secret_value() if service_key else "",
            timeout=config.SUPABASE_TIMEOUT_SECONDS,
        )
        logger.info("supabase_client_created", url=config.SUPABASE_URL)
    return _supabase_client


def get_llm_client(config: Settings = settings) -> httpx.AsyncClient:
    """Get or create the singleton HTTP client for the LLM provider."""
    global _llm_client
    if _llm_client is None:
        _llm_client = httpx.AsyncClient(timeout=config.LLM_TIMEOUT_SECONDS)
        logger.info("llm_client_created", url=config.ANTHROPIC_API_URL)
    return _llm_client


async def close_clients() -> None:
    """Close all singleton clients. Called on app shutdown."""
    global _supabase_client, _llm_client
    if _supabase_client:
        await _supabase_client.aclose()
        _supabase_client = None
        logger.info("supabase_client_closed")
    if _llm_client:
        await _llm_client.aclose()
        _llm_client = None
        logger.info("llm_client_closed")


def _build_identity_provider(config: Settings) -> IdentityProvider:
    if config.SUPABASE_JWT_SECRET and config.SUPABASE_JWT_SECRET.get_secret_value():
        return JwtIdentityProvider(
            secret=config.SUPABASE_JWT_SECRET.get_secret_value(),
            audience=config.SUPABASE_JWT_AUDIENCE or None,
        )
    return SupabaseIdentityProvider(get_supabase_client(config))


def build_chat_pipeline(config: Settings = settings) -> ChatPipeline:
    """Wire the chat pipeline from settings.

    Capabilities whose credentials are missing are left as None so the
    pipeline reports ServiceMisconfigured instead of calling out.

    Args:
        config: Application settings.

    Returns:
        A ChatPipeline bound to the shared HTTP clients.
    """
    identity = usage_store = knowledge = None
    if config.supabase_configured:
        identity = _build_identity_provider(config)
        usage_store = SupabaseUsageStore(get_supabase_client(config), table=config.USAGE_TABLE)
        knowledge = SupabaseKnowledgeBackend(
            get_supabase_client(config),
            function=config.MATCH_DOCUMENTS_RPC,
            timeout=config.RETRIEVER_TIMEOUT_SECONDS,
        )

    llm = None
    if config.llm_configured:
        llm = AnthropicProvider(
            get_llm_client(config),
            api_key=config.ANTHROPIC_API_KEY.get_secret_value(),
            model=config.LLM_MODEL,
            api_url=config.ANTHROPIC_API_URL,
            api_version=config.ANTHROPIC_VERSION,
        )

    return ChatPipeline(
        identity=identity,
        usage_store=usage_store,
        knowledge=knowledge,
        llm=llm,
        config=PipelineConfig(
            daily_limit=config.DAILY_QUERY_LIMIT,
            top_k=config.RETRIEVER_TOP_K,
            history_turns=config.CONVERSATION_CONTEXT_MESSAGES,
            max_tokens=config.LLM_MAX_TOKENS,
        ),
    )


def get_chat_pipeline() -> ChatPipeline:
    """FastAPI dependency returning a pipeline built from the global settings."""
    return build_chat_pipeline(settings)
