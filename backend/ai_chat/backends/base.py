from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ai_chat.models import KnowledgeChunk, ProviderReply, UsageEvent, UserIdentity


class IdentityProvider(Protocol):
    async def verify_token(self, token: str) -> UserIdentity:
        """Resolve a bearer token to a user identity.

        Raises:
            IdentityRejected: If the token is invalid, expired, or unknown.
        """
        ...


class UsageStore(Protocol):
    async def count_events_since(self, user_id: str, since: datetime) -> int: ...

    async def append_event(self, event: UsageEvent) -> None: ...


class KnowledgeBackend(Protocol):
    async def search(self, query: str, domain_filter: str | None, limit: int) -> list[KnowledgeChunk]: ...


class LLMProvider(Protocol):
    async def generate(
        self,
        system_prompt: str,
        messages: list[dict[str, str]],
        max_tokens: int,
    ) -> ProviderReply:
        """Run one generation call.

        Raises:
            ProviderError: On a non-success or malformed provider response.
            httpx.HTTPError: On transport failures and timeouts.
        """
        ...
