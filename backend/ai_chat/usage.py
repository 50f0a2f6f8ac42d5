from __future__ import annotations

from datetime import datetime, timezone

import structlog

from ai_chat.backends.base import UsageStore
from ai_chat.metrics import usage_record_failures_total
from ai_chat.models import UsageEvent

logger = structlog.get_logger()


async def record_usage(
    store: UsageStore,
    user_id: str,
    tokens_used: int,
    now: datetime | None = None,
) -> bool:
    """Append one usage event for a successful upstream call.

    The caller awaits this before responding, but a failed write never fails
    the request: errors are logged, counted, and swallowed.

    Args:
        store: Usage store to append to.
        user_id: The authenticated caller.
        tokens_used: Input plus output tokens of the call.
        now: Event timestamp, for tests. Defaults to the current UTC time.

    Returns:
        True if the event was written.
    """
    tokens_used = max(0, tokens_used)
    try:
        event = UsageEvent(
            user_id=user_id,
            timestamp=now or datetime.now(timezone.utc),
            tokens_used=tokens_used,
        )
        await store.append_event(event)
    except Exception as exc:
        usage_record_failures_total.inc()
        logger.warning(
            "usage_record_failed",
            user_id=user_id,
            tokens_used=tokens_used,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return False

    logger.debug("usage_recorded", user_id=user_id, tokens_used=tokens_used)
    return True
