from __future__ import annotations

from datetime import datetime

import httpx
import structlog

from ai_chat.exceptions import IdentityRejected, StoreError
from ai_chat.models import KnowledgeChunk, UsageEvent, UserIdentity

logger = structlog.get_logger()


def build_supabase_client(url: str, service_key: str, timeout: float) -> httpx.AsyncClient:
    """Create an async client authenticated with the service-role key.

    Args:
        url: Supabase project URL, e.g. ``https://xyz.supabase.co``.
        service_key: Privileged key that bypasses row-level security.
        timeout: Per-request timeout in seconds.

    Returns:
        An ``httpx.AsyncClient`` with base URL and auth headers preset.
    """
    return httpx.AsyncClient(
        base_url=url.rstrip("/"),
        headers={"apikey": service_key, "Authorization": f"Bearer {service_key}"},
        timeout=timeout,
    )


def _parse_content_range_total(header: str | None) -> int:
    """Extract the total from a PostgREST ``Content-Range`` header (``0-9/42`` or ``*/0``)."""
    if not header or "/" not in header:
        raise StoreError(f"Missing or malformed Content-Range header: {header!r}")
    total = header.rsplit("/", 1)[1]
    if not total.isdigit():
        raise StoreError(f"Count not available in Content-Range header: {header!r}")
    return int(total)


class SupabaseIdentityProvider:
    """Verifies access tokens against Supabase Auth (``GET /auth/v1/user``)."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def verify_token(self, token: str) -> UserIdentity:
        resp = await self._client.get("/auth/v1/user", headers={"Authorization": f"Bearer {token}"})
        if resp.status_code != 200:
            raise IdentityRejected(f"Identity provider returned HTTP {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise IdentityRejected("Identity provider returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise IdentityRejected("Identity provider returned a non-object body")
        user_id = payload.get("id")
        if not user_id:
            raise IdentityRejected("Identity provider response has no user id")
        return UserIdentity(user_id=str(user_id))


class SupabaseUsageStore:
    """Usage log kept in a PostgREST table with ``user_id``, ``tokens_used``, ``created_at`` columns."""

    def __init__(self, client: httpx.AsyncClient, table: str = "ai_usage_log") -> None:
        self._client = client
        self._path = f"/rest/v1/{table}"

    async def count_events_since(self, user_id: str, since: datetime) -> int:
        resp = await self._client.head(
            self._path,
            params={
                "select": "id",
                "user_id": f"eq.{user_id}",
                "created_at": f"gte.{since.isoformat()}",
            },
            headers={"Prefer": "count=exact"},
        )
        resp.raise_for_status()
        return _parse_content_range_total(resp.headers.get("content-range"))

    async def append_event(self, event: UsageEvent) -> None:
        resp = await self._client.post(
            self._path,
            json={
                "user_id": event.user_id,
                "tokens_used": event.tokens_used,
                "created_at": event.timestamp.isoformat(),
            },
            headers={"Prefer": "return=minimal"},
        )
        resp.raise_for_status()


class SupabaseKnowledgeBackend:
    """Semantic search through a PostgREST RPC returning ``{title, content}`` rows."""

    def __init__(self, client: httpx.AsyncClient, function: str = "match_documents", timeout: float | None = None) -> None:
        self._client = client
        self._path = f"/rest/v1/rpc/{function}"
        self._timeout = timeout

    async def search(self, query: str, domain_filter: str | None, limit: int) -> list[KnowledgeChunk]:
        kwargs: dict[str, object] = {}
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout
        resp = await self._client.post(
            self._path,
            json={"query_text": query, "domain_filter": domain_filter, "match_count": limit},
            **kwargs,
        )
        resp.raise_for_status()
        rows = resp.json()
        if not isinstance(rows, list):
            raise StoreError(f"Expected a list of chunks, got {type(rows).__name__}")

        chunks: list[KnowledgeChunk] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            chunks.append(
                KnowledgeChunk(
                    title=str(row.get("title") or ""),
                    content=str(row.get("content") or ""),
                )
            )
        logger.debug("knowledge_search_complete", num_chunks=len(chunks), domain_filter=domain_filter)
        return chunks
