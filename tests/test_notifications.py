import json
from decimal import Decimal

import httpx
import pytest

from conftest import RecordingLogger, RecordingPublisher
from services.notification_service import publisher as publisher_module
from services.notification_service.channels import HttpNotificationChannel, InMemoryNotificationChannel, NotificationChannel
from services.notification_service.consumer import OrderConfirmationConsumer
from services.notification_service.dispatcher import NotificationDispatcher
from services.notification_service.publisher import (
    EmailTopicPublisher,
    HttpEmailTopicPublisher,
    LoggingEmailTopicPublisher,
    render_confirmation_email,
)
from services.notification_service.repository import DeadLetterRepository, DeadLetterStore
from services.notification_service.schemas import OrderConfirmation, OrderConfirmationItem


def confirmation(order_id: int = 7) -> OrderConfirmation:
    return OrderConfirmation(
        order_id=order_id,
        username="alice",
        email="alice@example.com",
        total_amount=Decimal("20.00"),
        status="PROCESSING",
        items=[
            OrderConfirmationItem(
                id=1, product_id=3, product_name="Mug", quantity=2, unit_price=Decimal("10.00"), subtotal=Decimal("20.00")
            )
        ],
    )


class FailingChannel(NotificationChannel):

    def __init__(self, failures: int):
        self.failures = failures
        self.attempts = 0
        self.sent = []

    async def send(self, confirmation):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("queue unavailable")
        self.sent.append(confirmation)


class FailingPublisher(EmailTopicPublisher):

    def __init__(self):
        self.attempts = 0

    async def publish(self, message):
        self.attempts += 1
        raise ConnectionError("topic unavailable")


async def dead_letters(session_factory):
    async with session_factory() as db:
        return await DeadLetterRepository.list_all(db)


class TestDispatcher:

    async def test_delivers_after_transient_failures(self, session_factory):
        channel = FailingChannel(failures=2)
        dispatcher = NotificationDispatcher(channel, DeadLetterStore(session_factory), max_attempts=3, backoff=0)

        dispatcher.enqueue(confirmation())
        await dispatcher.drain()

        assert channel.attempts == 3
        assert [c.order_id for c in channel.sent] == [7]
        assert await dead_letters(session_factory) == []

    async def test_dead_letters_after_last_attempt(self, session_factory):
        channel = FailingChannel(failures=10)
        dispatcher = NotificationDispatcher(channel, DeadLetterStore(session_factory), max_attempts=2, backoff=0)

        dispatcher.enqueue(confirmation(order_id=11))
        await dispatcher.drain()

        assert channel.attempts == 2
        letters = await dead_letters(session_factory)
        assert len(letters) == 1
        assert letters[0].source == "dispatch"
        assert letters[0].attempts == 2
        assert json.loads(letters[0].payload)["order_id"] == 11
        assert "queue unavailable" in letters[0].error

    async def test_enqueue_returns_before_delivery(self, session_factory):
        channel = FailingChannel(failures=0)
        dispatcher = NotificationDispatcher(channel, DeadLetterStore(session_factory), max_attempts=1, backoff=0)

        dispatcher.enqueue(confirmation())
        assert channel.sent == []

        await dispatcher.drain()
        assert len(channel.sent) == 1

    async def test_in_memory_channel_feeds_consumer(self, session_factory):
        publisher = RecordingPublisher()
        consumer = OrderConfirmationConsumer(publisher, DeadLetterStore(session_factory), max_attempts=1, backoff=0)
        channel = InMemoryNotificationChannel()
        channel.start(consumer.handle)
        dispatcher = NotificationDispatcher(channel, DeadLetterStore(session_factory), max_attempts=1, backoff=0)

        dispatcher.enqueue(confirmation(order_id=42))
        await dispatcher.drain()
        await channel.close()

        assert [m.subject for m in publisher.published] == ["ShopSphere Order Confirmation - Order ID: 42"]

    async def test_http_channel_posts_with_internal_key(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["key"] = request.headers.get("X-Internal-API-Key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(202)

        channel = HttpNotificationChannel("http://consumer.test/order-confirmations", transport=httpx.MockTransport(handler))
        await channel.send(confirmation())

        assert seen["key"] == "test-internal-key"
        assert seen["body"]["username"] == "alice"
        assert seen["body"]["items"][0]["product_name"] == "Mug"


class TestConsumer:

    async def test_renders_and_publishes_email(self, session_factory):
        publisher = RecordingPublisher()
        consumer = OrderConfirmationConsumer(publisher, DeadLetterStore(session_factory), max_attempts=1, backoff=0)

        assert await consumer.handle(confirmation().model_dump_json()) is True

        message = publisher.published[0]
        assert message.to == "alice@example.com"
        assert message.body.startswith("Dear alice,")
        assert "Total Amount: 20.00" in message.body
        assert "- Mug (x2) @ 10.00 = 20.00" in message.body

    async def test_malformed_payload_is_dead_lettered(self, session_factory):
        publisher = RecordingPublisher()
        consumer = OrderConfirmationConsumer(publisher, DeadLetterStore(session_factory), max_attempts=3, backoff=0)

        assert await consumer.handle(b'{"order_id": "not a number"') is False

        letters = await dead_letters(session_factory)
        assert [(d.source, d.attempts) for d in letters] == [("consume", 1)]
        assert publisher.published == []

    async def test_publish_failure_is_retried_then_dead_lettered(self, session_factory):
        publisher = FailingPublisher()
        consumer = OrderConfirmationConsumer(publisher, DeadLetterStore(session_factory), max_attempts=3, backoff=0)

        assert await consumer.handle(confirmation().model_dump_json()) is False

        assert publisher.attempts == 3
        letters = await dead_letters(session_factory)
        assert len(letters) == 1
        assert letters[0].source == "consume"

    async def test_http_publisher_posts_message(self):
        bodies = []

        def handler(request: httpx.Request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200)

        publisher = HttpEmailTopicPublisher("http://email.test/topic", transport=httpx.MockTransport(handler))
        await publisher.publish(render_confirmation_email(confirmation()))

        assert bodies[0]["subject"] == "ShopSphere Order Confirmation - Order ID: 7"
        assert bodies[0]["to"] == "alice@example.com"

    async def test_logging_publisher_only_logs(self, monkeypatch):
        recorder = RecordingLogger()
        monkeypatch.setattr(publisher_module, "logger", recorder)
        publisher = LoggingEmailTopicPublisher()

        for order_id in range(50):
            await publisher.publish(render_confirmation_email(confirmation(order_id=order_id)))

        assert len(recorder.events) == 50
        level, event, fields = recorder.events[-1]
        assert (level, event) == ("info", "confirmation_email_published")
        assert fields["subject"] == "ShopSphere Order Confirmation - Order ID: 49"
        assert vars(publisher) == {}


class TestRetryLimits:

    async def test_dispatcher_rejects_zero_attempts(self, session_factory, monkeypatch):
        monkeypatch.setenv("NOTIFICATION_MAX_ATTEMPTS", "5")
        with pytest.raises(ValueError):
            NotificationDispatcher(FailingChannel(failures=0), DeadLetterStore(session_factory), max_attempts=0)

    async def test_consumer_rejects_zero_attempts(self, session_factory, monkeypatch):
        monkeypatch.setenv("NOTIFICATION_MAX_ATTEMPTS", "5")
        with pytest.raises(ValueError):
            OrderConfirmationConsumer(RecordingPublisher(), DeadLetterStore(session_factory), max_attempts=0)

    async def test_environment_default_applies_only_when_unset(self, session_factory, monkeypatch):
        monkeypatch.setenv("NOTIFICATION_MAX_ATTEMPTS", "5")
        store = DeadLetterStore(session_factory)
        assert NotificationDispatcher(FailingChannel(failures=0), store).max_attempts == 5
        assert NotificationDispatcher(FailingChannel(failures=0), store, max_attempts=1).max_attempts == 1
