from __future__ import annotations

from datetime import datetime, timezone

import structlog

from ai_chat.backends.base import UsageStore
from ai_chat.metrics import quota_check_failures_total, quota_rejections_total

logger = structlog.get_logger()

DEFAULT_DAILY_LIMIT = 50


def start_of_utc_day(now: datetime | None = None) -> datetime:
    """Return midnight UTC of the calendar day containing ``now``.

    Args:
        now: Reference instant; naive values are taken as UTC. Defaults to the
            current time.

    Returns:
        A timezone-aware datetime at 00:00:00 UTC.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    else:
        now = now.astimezone(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


async def check_and_admit(
    store: UsageStore,
    user_id: str,
    limit: int = DEFAULT_DAILY_LIMIT,
    now: datetime | None = None,
) -> bool:
    """Decide whether ``user_id`` may make another upstream call today.

    Fails open: when the usage store cannot be read the request is admitted.
    The quota is a soft limit, so a storage outage never blocks the user.

    Args:
        store: Usage store to read today's event count from.
        user_id: The authenticated caller.
        limit: Maximum number of events per UTC day.
        now: Reference instant, for tests. Defaults to the current time.

    Returns:
        True if the request is admitted.
    """
    since = start_of_utc_day(now)
    try:
        used = await store.count_events_since(user_id, since)
    except Exception as exc:
        quota_check_failures_total.inc()
        logger.warning(
            "quota_check_failed",
            user_id=user_id,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return True

    if used >= limit:
        quota_rejections_total.inc()
        logger.info("quota_exceeded", user_id=user_id, used=used, limit=limit)
        return False

    logger.debug("quota_admitted", user_id=user_id, used=used, limit=limit)
    return True
