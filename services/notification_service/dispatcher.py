import asyncio
import os
from typing import Optional

import structlog

from .channels import NotificationChannel
from .repository import DeadLetterStore
from .retry import deliver_with_retry
from .schemas import OrderConfirmation

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """
    Fire-and-forget delivery of order confirmations.

    `enqueue` only schedules a background task and returns immediately; the
    order has already committed, so nothing here may raise into the caller.
    Failed deliveries are retried with linear backoff and finally written to
    the dead-letter table.
    """

    def __init__(
        self,
        channel: NotificationChannel,
        dead_letters: DeadLetterStore,
        max_attempts: Optional[int] = None,
        backoff: Optional[float] = None,
    ):
        self.channel = channel
        self.dead_letters = dead_letters
        self.max_attempts = max_attempts if max_attempts is not None else int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "3"))
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.backoff = backoff if backoff is not None else float(os.getenv("NOTIFICATION_RETRY_BACKOFF_SECONDS", "0.5"))
        self._tasks: set[asyncio.Task] = set()

    def enqueue(self, confirmation: OrderConfirmation) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self._deliver(confirmation))
        except Exception as e:
            logger.error("notification_enqueue_failed", order_id=confirmation.order_id, error=str(e))
            return
        # Keep a strong reference until the task finishes
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, confirmation: OrderConfirmation) -> None:
        error = await deliver_with_retry(
            lambda: self.channel.send(confirmation),
            stage="dispatch",
            max_attempts=self.max_attempts,
            backoff=self.backoff,
            order_id=confirmation.order_id,
        )
        if error is None:
            logger.info("order_confirmation_dispatched", order_id=confirmation.order_id)
            return
        await self.dead_letters.record(
            source="dispatch",
            payload=confirmation.model_dump_json(),
            error=str(error),
            attempts=self.max_attempts,
        )

    async def drain(self) -> None:
        """Waits for in-flight deliveries, then for the channel to catch up."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.channel.drain()
