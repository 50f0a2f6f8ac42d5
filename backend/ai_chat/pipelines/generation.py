from __future__ import annotations

import time

import httpx
import structlog

from ai_chat.backends.base import LLMProvider
from ai_chat.exceptions import Failure, ProviderError, upstream_unavailable
from ai_chat.metrics import generation_duration, llm_tokens_used_total, upstream_failures_total
from ai_chat.models import Generation

logger = structlog.get_logger()

DEFAULT_MAX_TOKENS = 1024


async def generate_answer(
    provider: LLMProvider,
    system_prompt: str,
    messages: list[dict[str, str]],
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> Generation | Failure:
    """Call the LLM provider once and normalise its reply.

    Every provider failure becomes the same UpstreamUnavailable failure with a
    generic message; the provider's status and body go to the log only.

    Args:
        provider: The LLM provider.
        system_prompt: System instruction for the model.
        messages: Outbound conversation ending with the user's question.
        max_tokens: Output token ceiling.

    Returns:
        Generation with the answer text and input+output token count, or an
        UpstreamUnavailable failure.
    """
    start_time = time.perf_counter()
    try:
        reply = await provider.generate(system_prompt, messages, max_tokens)
    except ProviderError as exc:
        upstream_failures_total.labels(reason="provider_error").inc()
        logger.error(
            "upstream_call_failed",
            reason="provider_error",
            status_code=exc.status_code,
            body=exc.body,
            error=str(exc),
        )
        return upstream_unavailable()
    except httpx.TimeoutException as exc:
        upstream_failures_total.labels(reason="timeout").inc()
        logger.error("upstream_call_failed", reason="timeout", error=str(exc))
        return upstream_unavailable()
    except httpx.HTTPError as exc:
        upstream_failures_total.labels(reason="transport").inc()
        logger.error("upstream_call_failed", reason="transport", error=str(exc), error_type=type(exc).__name__)
        return upstream_unavailable()
    finally:
        generation_duration.observe(time.perf_counter() - start_time)

    tokens_used = max(0, (reply.input_tokens or 0) + (reply.output_tokens or 0))
    llm_tokens_used_total.inc(tokens_used)
    logger.info(
        "upstream_call_complete",
        input_tokens=reply.input_tokens,
        output_tokens=reply.output_tokens,
        answer_length=len(reply.text or ""),
    )
    return Generation(answer=reply.text or "", tokens_used=tokens_used)
