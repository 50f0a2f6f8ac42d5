from __future__ import annotations

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from ai_chat.exceptions import ErrorKind, Failure, IdentityRejected, ProviderError
from ai_chat.models import ProviderReply
from ai_chat.pipelines.chat import ChatPipeline, ChatSuccess, PipelineConfig, parse_chat_request
from ai_chat.pipelines.prompt import CONTEXT_HEADER, ENGLISH_DIRECTIVE

AUTH = "Bearer user-jwt"


def _body(**fields: object) -> bytes:
    payload = {"question": "How do I inspect a fire extinguisher?"}
    payload.update(fields)
    return json.dumps(payload).encode()


def test_parse_chat_request_accepts_camel_case() -> None:
    request = parse_chat_request(
        json.dumps(
            {
                "question": "q",
                "conversationHistory": [{"role": "assistant", "content": "hi"}],
                "domainContext": "housekeeping",
                "language": "hi",
            }
        ).encode()
    )
    assert not isinstance(request, Failure)
    assert request.conversation_history[0].role == "assistant"
    assert request.domain_context == "housekeeping"
    assert request.language == "hi"


def test_parse_chat_request_defaults() -> None:
    request = parse_chat_request(b'{"question": "q"}')
    assert not isinstance(request, Failure)
    assert request.conversation_history == []
    assert request.domain_context is None
    assert request.language == "en"


@pytest.mark.parametrize("body", [b"", b"not json", b"[]", b'{"question": 42}', b'{"question": "q", "language": "fr"}'])
def test_parse_chat_request_rejects_bad_body(body: bytes) -> None:
    result = parse_chat_request(body)
    assert isinstance(result, Failure)
    assert result.kind == ErrorKind.INVALID_REQUEST
    assert result.message == "Invalid request body"


@pytest.mark.parametrize("body", [b"{}", b'{"question": ""}', b'{"question": "   "}', b'{"question": null}'])
def test_parse_chat_request_requires_question(body: bytes) -> None:
    result = parse_chat_request(body)
    assert isinstance(result, Failure)
    assert result.message == "Question is required"


@pytest.mark.anyio
async def test_fire_extinguisher_scenario(
    pipeline: ChatPipeline,
    identity_provider: AsyncMock,
    knowledge_backend: AsyncMock,
    llm_provider: AsyncMock,
    usage_store: AsyncMock,
) -> None:
    """Retrieved chunk reaches the prompt and comes back as a source."""
    outcome = await pipeline.handle(AUTH, _body(conversationHistory=[], language="en"))

    assert isinstance(outcome, ChatSuccess)
    assert outcome.response.answer == "Inspect it monthly."
    assert outcome.response.tokens_used == 150
    assert outcome.response.sources == ["FM-101"]

    system_prompt, messages, max_tokens = llm_provider.generate.await_args.args
    assert ENGLISH_DIRECTIVE in system_prompt
    assert f"{CONTEXT_HEADER}\n[FM-101]\nCheck pressure gauge monthly." in system_prompt
    assert messages == [{"role": "user", "content": "How do I inspect a fire extinguisher?"}]
    assert max_tokens == 1024

    knowledge_backend.search.assert_awaited_once_with("How do I inspect a fire extinguisher?", None, 5)
    usage_store.append_event.assert_awaited_once()
    event = usage_store.append_event.await_args.args[0]
    assert event.user_id == identity_provider.verify_token.return_value.user_id
    assert event.tokens_used == 150


@pytest.mark.anyio
async def test_missing_header_stops_before_anything(
    pipeline: ChatPipeline, identity_provider: AsyncMock, usage_store: AsyncMock
) -> None:
    outcome = await pipeline.handle(None, _body())

    assert isinstance(outcome, Failure)
    assert outcome.message == "Missing Authorization header"
    identity_provider.verify_token.assert_not_awaited()
    usage_store.count_events_since.assert_not_awaited()


@pytest.mark.anyio
async def test_rejected_token_is_unauthenticated(
    pipeline: ChatPipeline, identity_provider: AsyncMock, usage_store: AsyncMock
) -> None:
    identity_provider.verify_token.side_effect = IdentityRejected("expired")

    outcome = await pipeline.handle(AUTH, _body())

    assert isinstance(outcome, Failure)
    assert outcome.kind == ErrorKind.UNAUTHENTICATED
    usage_store.count_events_since.assert_not_awaited()


@pytest.mark.anyio
async def test_quota_exceeded_skips_upstream(
    pipeline: ChatPipeline, usage_store: AsyncMock, knowledge_backend: AsyncMock, llm_provider: AsyncMock
) -> None:
    usage_store.count_events_since.return_value = 50

    outcome = await pipeline.handle(AUTH, _body())

    assert isinstance(outcome, Failure)
    assert outcome.kind == ErrorKind.QUOTA_EXCEEDED
    assert "50/day" in outcome.message
    knowledge_backend.search.assert_not_awaited()
    llm_provider.generate.assert_not_awaited()
    usage_store.append_event.assert_not_awaited()


@pytest.mark.anyio
async def test_quota_check_runs_before_body_parsing(pipeline: ChatPipeline, usage_store: AsyncMock) -> None:
    """An over-quota user gets 429 even with a malformed body."""
    usage_store.count_events_since.return_value = 99

    outcome = await pipeline.handle(AUTH, b"not json")

    assert isinstance(outcome, Failure)
    assert outcome.kind == ErrorKind.QUOTA_EXCEEDED


@pytest.mark.anyio
async def test_quota_store_outage_fails_open(pipeline: ChatPipeline, usage_store: AsyncMock) -> None:
    usage_store.count_events_since.side_effect = httpx.ConnectError("db down")

    outcome = await pipeline.handle(AUTH, _body())

    assert isinstance(outcome, ChatSuccess)


@pytest.mark.anyio
async def test_blank_question_never_calls_upstream(
    pipeline: ChatPipeline, llm_provider: AsyncMock, usage_store: AsyncMock
) -> None:
    outcome = await pipeline.handle(AUTH, _body(question="   "))

    assert isinstance(outcome, Failure)
    assert outcome.kind == ErrorKind.INVALID_REQUEST
    assert outcome.status_code == 400
    llm_provider.generate.assert_not_awaited()
    usage_store.append_event.assert_not_awaited()


@pytest.mark.anyio
async def test_retrieval_failure_degrades_to_no_context(
    pipeline: ChatPipeline, knowledge_backend: AsyncMock, llm_provider: AsyncMock
) -> None:
    knowledge_backend.search.side_effect = httpx.ReadTimeout("vector search slow")

    outcome = await pipeline.handle(AUTH, _body())

    assert isinstance(outcome, ChatSuccess)
    assert outcome.response.sources == []
    system_prompt = llm_provider.generate.await_args.args[0]
    assert CONTEXT_HEADER not in system_prompt


@pytest.mark.anyio
async def test_empty_retrieval_gives_empty_sources(pipeline: ChatPipeline, knowledge_backend: AsyncMock) -> None:
    knowledge_backend.search.return_value = []

    outcome = await pipeline.handle(AUTH, _body())

    assert isinstance(outcome, ChatSuccess)
    assert outcome.response.sources == []


@pytest.mark.anyio
async def test_upstream_failure_does_not_charge_quota(
    pipeline: ChatPipeline, llm_provider: AsyncMock, usage_store: AsyncMock
) -> None:
    llm_provider.generate.side_effect = ProviderError("HTTP 500", status_code=500, body="oops")

    outcome = await pipeline.handle(AUTH, _body())

    assert isinstance(outcome, Failure)
    assert outcome.kind == ErrorKind.UPSTREAM_UNAVAILABLE
    usage_store.append_event.assert_not_awaited()


@pytest.mark.anyio
async def test_usage_write_failure_still_returns_answer(pipeline: ChatPipeline, usage_store: AsyncMock) -> None:
    usage_store.append_event.side_effect = httpx.ConnectError("db down")

    outcome = await pipeline.handle(AUTH, _body())

    assert isinstance(outcome, ChatSuccess)
    assert outcome.response.tokens_used == 150


@pytest.mark.anyio
async def test_missing_usage_fields_count_as_zero(pipeline: ChatPipeline, llm_provider: AsyncMock) -> None:
    llm_provider.generate.return_value = ProviderReply(text="ok", input_tokens=40, output_tokens=None)

    outcome = await pipeline.handle(AUTH, _body())

    assert isinstance(outcome, ChatSuccess)
    assert outcome.response.tokens_used == 40


@pytest.mark.anyio
async def test_history_window_is_forwarded(pipeline: ChatPipeline, llm_provider: AsyncMock) -> None:
    history = [{"role": "user" if i % 2 == 0 else "assistant", "content": f"t{i}"} for i in range(14)]

    await pipeline.handle(AUTH, _body(conversationHistory=history))

    messages = llm_provider.generate.await_args.args[1]
    assert len(messages) == 11
    assert messages[0]["content"] == "t4"
    assert messages[-1] == {"role": "user", "content": "How do I inspect a fire extinguisher?"}


@pytest.mark.anyio
async def test_missing_llm_is_service_misconfigured(
    identity_provider: AsyncMock, usage_store: AsyncMock, knowledge_backend: AsyncMock
) -> None:
    pipeline = ChatPipeline(identity_provider, usage_store, knowledge_backend, llm=None)

    outcome = await pipeline.handle(AUTH, _body())

    assert isinstance(outcome, Failure)
    assert outcome.kind == ErrorKind.SERVICE_MISCONFIGURED
    assert outcome.status_code == 503
    identity_provider.verify_token.assert_not_awaited()


@pytest.mark.anyio
async def test_unexpected_fault_is_internal_error(pipeline: ChatPipeline, identity_provider: AsyncMock) -> None:
    identity_provider.verify_token.side_effect = KeyError("sub")

    outcome = await pipeline.handle(AUTH, _body())

    assert isinstance(outcome, Failure)
    assert outcome.kind == ErrorKind.INTERNAL_ERROR
    assert outcome.message == "Internal server error"


@pytest.mark.anyio
async def test_custom_limit_is_reported(
    identity_provider: AsyncMock, usage_store: AsyncMock, knowledge_backend: AsyncMock, llm_provider: AsyncMock
) -> None:
    pipeline = ChatPipeline(
        identity_provider, usage_store, knowledge_backend, llm_provider, config=PipelineConfig(daily_limit=3)
    )
    usage_store.count_events_since.return_value = 3

    outcome = await pipeline.handle(AUTH, _body())

    assert isinstance(outcome, Failure)
    assert "3/day" in outcome.message
