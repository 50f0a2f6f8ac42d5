from __future__ import annotations

import time
from dataclasses import dataclass

import structlog
from pydantic import ValidationError

from ai_chat.auth import parse_bearer, verify_credential
from ai_chat.backends.base import IdentityProvider, KnowledgeBackend, LLMProvider, UsageStore
from ai_chat.exceptions import (
    Failure,
    internal_error,
    invalid_request,
    quota_exceeded,
    service_misconfigured,
)
from ai_chat.metrics import chat_request_duration, chat_requests_total
from ai_chat.pipelines.generation import DEFAULT_MAX_TOKENS, generate_answer
from ai_chat.pipelines.prompt import (
    DEFAULT_HISTORY_TURNS,
    PROMPT_VERSION,
    assemble_messages,
    compose_system_prompt,
)
from ai_chat.pipelines.retrieval import DEFAULT_TOP_K, extract_sources, retrieve_context
from ai_chat.quota import DEFAULT_DAILY_LIMIT, check_and_admit
from ai_chat.schemas.chat import ChatRequest, ChatResponse
from ai_chat.usage import record_usage

logger = structlog.get_logger()


@dataclass(frozen=True)
class PipelineConfig:
    daily_limit: int = DEFAULT_DAILY_LIMIT
    top_k: int = DEFAULT_TOP_K
    history_turns: int = DEFAULT_HISTORY_TURNS
    max_tokens: int = DEFAULT_MAX_TOKENS


@dataclass(frozen=True)
class ChatSuccess:
    response: ChatResponse


ChatOutcome = ChatSuccess | Failure


def parse_chat_request(body: bytes) -> ChatRequest | Failure:
    """Parse and validate the raw JSON request body.

    Args:
        body: Raw request body bytes.

    Returns:
        The validated ChatRequest, or an InvalidRequest failure for an
        unparsable body or a missing/blank question.
    """
    try:
        request = ChatRequest.model_validate_json(body or b"")
    except ValidationError as exc:
        logger.info("chat_request_invalid", errors=exc.error_count())
        return invalid_request("Invalid request body")

    if not (request.question or "").strip():
        return invalid_request("Question is required")
    return request


class ChatPipeline:
    """Sequences one chat request through every stage.

    Stages run strictly in order and the first failure is terminal:
    authenticate, check quota, parse input, retrieve context, compose prompt,
    call upstream, record usage, build response. Retrieval and usage-write
    failures are absorbed by their stages; nothing is retried.

    A capability left as None means the service is not configured for it and
    requests end in ServiceMisconfigured before any outbound call.
    """

    def __init__(
        self,
        identity: IdentityProvider | None,
        usage_store: UsageStore | None,
        knowledge: KnowledgeBackend | None,
        llm: LLMProvider | None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.identity = identity
        self.usage_store = usage_store
        self.knowledge = knowledge
        self.llm = llm
        self.config = config or PipelineConfig()

    def missing_capabilities(self) -> list[str]:
        missing = []
        for name in ("identity", "usage_store", "knowledge", "llm"):
            if getattr(self, name) is None:
                missing.append(name)
        return missing

    async def handle(self, authorization: str | None, body: bytes) -> ChatOutcome:
        """Run the pipeline for one request.

        Args:
            authorization: Raw ``Authorization`` header value, or None.
            body: Raw JSON request body.

        Returns:
            ChatSuccess with the response envelope, or the terminal Failure.
        """
        start_time = time.perf_counter()
        try:
            outcome = await self._run(authorization, body)
        except Exception:
            logger.exception("chat_pipeline_error")
            outcome = internal_error()

        duration = time.perf_counter() - start_time
        chat_request_duration.observe(duration)
        label = "success" if isinstance(outcome, ChatSuccess) else outcome.kind.value
        chat_requests_total.labels(outcome=label).inc()
        logger.info("chat_request_completed", outcome=label, duration_ms=round(duration * 1000, 2))
        return outcome

    async def _run(self, authorization: str | None, body: bytes) -> ChatOutcome:
        # 1. Authenticate
        token = parse_bearer(authorization)
        if isinstance(token, Failure):
            return token

        missing = self.missing_capabilities()
        if missing:
            logger.error("service_misconfigured", missing=missing)
            return service_misconfigured()

        identity = await verify_credential(self.identity, authorization)
        if isinstance(identity, Failure):
            return identity
        structlog.contextvars.bind_contextvars(user_id=identity.user_id)

        # 2. Quota check (read only; charged after a successful upstream call)
        if not await check_and_admit(self.usage_store, identity.user_id, self.config.daily_limit):
            return quota_exceeded(self.config.daily_limit)

        # 3. Parse request body
        request = parse_chat_request(body)
        if isinstance(request, Failure):
            return request

        # 4. Retrieve knowledge context (degrades to "")
        context = await retrieve_context(
            self.knowledge,
            request.question,
            request.domain_context,
            self.config.top_k,
        )

        # 5. Compose prompt
        system_prompt = compose_system_prompt(request.language, context)
        messages = assemble_messages(request.conversation_history, request.question, self.config.history_turns)
        logger.debug(
            "prompt_composed",
            prompt_version=PROMPT_VERSION,
            language=request.language,
            context_chars=len(context),
            num_messages=len(messages),
        )

        # 6. Call upstream
        generation = await generate_answer(self.llm, system_prompt, messages, self.config.max_tokens)
        if isinstance(generation, Failure):
            return generation

        # 7. Record usage (best-effort)
        await record_usage(self.usage_store, identity.user_id, generation.tokens_used)

        # 8. Build response
        return ChatSuccess(
            response=ChatResponse(
                answer=generation.answer,
                tokens_used=generation.tokens_used,
                sources=extract_sources(context),
            )
        )
