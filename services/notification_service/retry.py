import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from shared.observability import ecomm_notifications_total

logger = structlog.get_logger(__name__)


async def deliver_with_retry(
    action: Callable[[], Awaitable[None]],
    *,
    stage: str,
    max_attempts: int,
    backoff: float,
    **log_context,
) -> Optional[Exception]:
    """
    Runs `action` until it succeeds or `max_attempts` is used up, sleeping
    `backoff * attempt` seconds between tries. Returns None on success and the
    last exception otherwise; never raises.
    """
    last_error: Optional[Exception] = None
    for attempt in range(1, max_attempts + 1):
        try:
            await action()
        except Exception as e:
            last_error = e
            logger.warning("notification_attempt_failed", stage=stage, attempt=attempt, error=str(e), **log_context)
            if attempt < max_attempts:
                ecomm_notifications_total.labels(stage=stage, outcome="retried").inc()
                await asyncio.sleep(backoff * attempt)
            continue
        ecomm_notifications_total.labels(stage=stage, outcome="delivered").inc()
        return None
    ecomm_notifications_total.labels(stage=stage, outcome="dead_lettered").inc()
    return last_error
