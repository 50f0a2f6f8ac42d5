from __future__ import annotations

import re
import time

import structlog

from ai_chat.backends.base import KnowledgeBackend
from ai_chat.metrics import retrieval_degraded_total, retrieval_duration
from ai_chat.models import KnowledgeChunk

logger = structlog.get_logger()

CHUNK_SEPARATOR = "\n\n---\n\n"
DEFAULT_TOP_K = 5

_TITLE_RE = re.compile(r"^\[(.+)\]$")


def _flatten_separators(content: str) -> str:
    content = content.strip()
    while CHUNK_SEPARATOR in content or content.endswith("\n\n---"):
        content = content.replace(CHUNK_SEPARATOR, "\n\n").removesuffix("\n\n---").strip()
    return content


def format_context(chunks: list[KnowledgeChunk]) -> str:
    """Render chunks as ``[title]\\ncontent`` blocks joined by CHUNK_SEPARATOR.

    Separators inside chunk content are collapsed to blank lines so every
    segment of the result maps to exactly one chunk.
    """
    return CHUNK_SEPARATOR.join(f"[{chunk.title}]\n{_flatten_separators(chunk.content)}" for chunk in chunks)


def extract_sources(context: str) -> list[str]:
    """Recover chunk titles from a context block built by format_context.

    Only the first line of each segment is read as the title line. Segments
    whose first line is not a complete ``[title]`` (for example an empty
    title) are skipped.

    Args:
        context: The assembled knowledge context, possibly empty.

    Returns:
        Titles in the order the chunks were retrieved.
    """
    if not context:
        return []

    sources: list[str] = []
    for segment in context.split(CHUNK_SEPARATOR):
        first_line = segment.lstrip().split("\n", 1)[0]
        match = _TITLE_RE.match(first_line)
        if match and match.group(1).strip():
            sources.append(match.group(1))
    return sources


async def retrieve_context(
    backend: KnowledgeBackend,
    question: str,
    domain_filter: str | None = None,
    limit: int = DEFAULT_TOP_K,
) -> str:
    """Fetch the top-ranked knowledge chunks for ``question`` as one text block.

    Never fails the request: a backend error, timeout, or empty result yields
    an empty string and the model answers from general knowledge.

    Args:
        backend: Semantic search backend.
        question: The user's question, used as the search query.
        domain_filter: Optional domain tag restricting the search.
        limit: Number of chunks to request.

    Returns:
        The formatted context, or ``""``.
    """
    start_time = time.perf_counter()
    try:
        chunks = await backend.search(question, domain_filter, limit)
    except Exception as exc:
        retrieval_degraded_total.labels(reason="error").inc()
        logger.warning(
            "retrieval_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            domain_filter=domain_filter,
        )
        return ""
    finally:
        retrieval_duration.observe(time.perf_counter() - start_time)

    if not chunks:
        retrieval_degraded_total.labels(reason="empty").inc()
        logger.info("retrieval_empty", domain_filter=domain_filter)
        return ""

    context = format_context(chunks[:limit])
    logger.info(
        "retrieval_complete",
        num_chunks=min(len(chunks), limit),
        context_chars=len(context),
        domain_filter=domain_filter,
    )
    return context
