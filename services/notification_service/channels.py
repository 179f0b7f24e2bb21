"""
Notification channels: where the dispatcher hands order confirmations.

`InMemoryNotificationChannel` keeps the queue in-process and feeds a consumer
task; `HttpNotificationChannel` posts to a separately deployed consumer.
"""
import abc
import asyncio
import os
from typing import Awaitable, Callable, Optional

import httpx
import structlog

from shared.security import INTERNAL_API_HEADERS

from .schemas import OrderConfirmation

logger = structlog.get_logger(__name__)


class NotificationChannel(abc.ABC):

    @abc.abstractmethod
    async def send(self, confirmation: OrderConfirmation) -> None:
        ...

    async def drain(self) -> None:
        """Wait until everything sent so far has been consumed."""

    async def close(self) -> None:
        ...


class InMemoryNotificationChannel(NotificationChannel):

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self._consumer_task: Optional[asyncio.Task] = None

    async def send(self, confirmation: OrderConfirmation) -> None:
        await self.queue.put(confirmation.model_dump_json())

    def start(self, handler: Callable[[str], Awaitable[None]]) -> None:
        if self._consumer_task is None:
            self._consumer_task = asyncio.create_task(self._consume(handler))

    async def _consume(self, handler: Callable[[str], Awaitable[None]]) -> None:
        while True:
            raw = await self.queue.get()
            try:
                await handler(raw)
            except Exception as e:
                logger.error("in_memory_consumer_failed", error=str(e))
            finally:
                self.queue.task_done()

    async def drain(self) -> None:
        if self._consumer_task is not None:
            await self.queue.join()

    async def close(self) -> None:
        if self._consumer_task is not None:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None


class HttpNotificationChannel(NotificationChannel):

    def __init__(self, url: str, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def send(self, confirmation: OrderConfirmation) -> None:
        async with httpx.AsyncClient(headers=INTERNAL_API_HEADERS, timeout=self.timeout, transport=self.transport) as client:
            resp = await client.post(
                self.url,
                content=confirmation.model_dump_json(),
                headers={"Content-Type": "application/json"},
            )
            resp.raise_for_status()


def build_notification_channel() -> NotificationChannel:
    kind = os.getenv("NOTIFICATION_CHANNEL", "memory").lower()
    if kind == "http":
        url = os.getenv("NOTIFICATION_QUEUE_URL", "http://localhost:8010/order-confirmations")
        return HttpNotificationChannel(url)
    if kind != "memory":
        raise ValueError(f"Unknown NOTIFICATION_CHANNEL: {kind}")
    return InMemoryNotificationChannel()
