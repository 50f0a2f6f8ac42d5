from ai_chat.backends.anthropic import AnthropicProvider
from ai_chat.backends.base import IdentityProvider, KnowledgeBackend, LLMProvider, UsageStore
from ai_chat.backends.jwt import JwtIdentityProvider
from ai_chat.backends.supabase import (
    SupabaseIdentityProvider,
    SupabaseKnowledgeBackend,
    SupabaseUsageStore,
    build_supabase_client,
)

__all__ = [
    "AnthropicProvider",
    "IdentityProvider",
    "JwtIdentityProvider",
    "KnowledgeBackend",
    "LLMProvider",
    "SupabaseIdentityProvider",
    "SupabaseKnowledgeBackend",
    "SupabaseUsageStore",
    "UsageStore",
    "build_supabase_client",
]
