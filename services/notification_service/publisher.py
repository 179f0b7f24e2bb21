"""
Email topic publishers used by the order confirmation consumer.

Without EMAIL_TOPIC_URL the rendered email is only logged, which is what
local development and the test suite use.
"""
import abc
import os
from dataclasses import asdict, dataclass
from typing import Optional

import httpx
import structlog

from shared.security import INTERNAL_API_HEADERS

from .schemas import OrderConfirmation

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    to: Optional[str]
    subject: str
    body: str


def render_confirmation_email(confirmation: OrderConfirmation) -> EmailMessage:
    lines = [
        f"Dear {confirmation.username},",
        "",
        "Your Order has been placed successfully.",
        "",
        f"Order ID: {confirmation.order_id}",
        f"Total Amount: {confirmation.total_amount}",
        f"Status: {confirmation.status}",
        "",
        "Items:",
    ]
    for item in confirmation.items:
        lines.append(
            f"- {item.product_name} (x{item.quantity}) @ {item.unit_price} = {item.subtotal}"
        )
    lines += ["", "Thank you for shopping with us.", "", "Regards,", "ShopSphere"]

    return EmailMessage(
        to=confirmation.email,
        subject=f"ShopSphere Order Confirmation - Order ID: {confirmation.order_id}",
        body="\n".join(lines),
    )


class EmailTopicPublisher(abc.ABC):

    @abc.abstractmethod
    async def publish(self, message: EmailMessage) -> None:
        ...


class LoggingEmailTopicPublisher(EmailTopicPublisher):

    async def publish(self, message: EmailMessage) -> None:
        logger.info("confirmation_email_published", to=message.to, subject=message.subject)


class HttpEmailTopicPublisher(EmailTopicPublisher):

    def __init__(self, url: str, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def publish(self, message: EmailMessage) -> None:
        async with httpx.AsyncClient(headers=INTERNAL_API_HEADERS, timeout=self.timeout, transport=self.transport) as client:
            resp = await client.post(self.url, json=asdict(message))
            resp.raise_for_status()
        logger.info("confirmation_email_published", to=message.to, subject=message.subject)


def build_email_publisher() -> EmailTopicPublisher:
    url = os.getenv("EMAIL_TOPIC_URL")
    if url:
        return HttpEmailTopicPublisher(url)
    return LoggingEmailTopicPublisher()
