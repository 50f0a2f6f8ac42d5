from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from ai_chat.clients import get_chat_pipeline
from ai_chat.main import app
from ai_chat.models import KnowledgeChunk, ProviderReply, UserIdentity
from ai_chat.pipelines.chat import ChatPipeline

# ---------------------------------------------------------------------------
# Capability doubles. Each is an AsyncMock whose methods return a happy-path
# value; tests override return_value / side_effect per case.
# ---------------------------------------------------------------------------

TEST_USER_ID = "3f1c2a9e-0000-4000-8000-000000000001"


@pytest.fixture
def identity_provider() -> AsyncMock:
    provider = AsyncMock()
    provider.verify_token.return_value = UserIdentity(user_id=TEST_USER_ID)
    return provider


@pytest.fixture
def usage_store() -> AsyncMock:
    store = AsyncMock()
    store.count_events_since.return_value = 0
    store.append_event.return_value = None
    return store


@pytest.fixture
def knowledge_backend() -> AsyncMock:
    backend = AsyncMock()
    backend.search.return_value = [KnowledgeChunk(title="FM-101", content="Check pressure gauge monthly.")]
    return backend


@pytest.fixture
def llm_provider() -> AsyncMock:
    provider = AsyncMock()
    provider.generate.return_value = ProviderReply(text="Inspect it monthly.", input_tokens=120, output_tokens=30)
    return provider


@pytest.fixture
def pipeline(
    identity_provider: AsyncMock,
    usage_store: AsyncMock,
    knowledge_backend: AsyncMock,
    llm_provider: AsyncMock,
) -> ChatPipeline:
    return ChatPipeline(
        identity=identity_provider,
        usage_store=usage_store,
        knowledge=knowledge_backend,
        llm=llm_provider,
    )


@pytest.fixture
async def chat_client(pipeline: ChatPipeline) -> AsyncClient:
    """API client whose chat endpoint runs against the mocked pipeline."""
    app.dependency_overrides[get_chat_pipeline] = lambda: pipeline
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as client:
            yield client
    finally:
        app.dependency_overrides.pop(get_chat_pipeline, None)
