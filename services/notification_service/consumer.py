import os
from typing import Optional, Union

import structlog
from pydantic import ValidationError

from .publisher import EmailTopicPublisher, render_confirmation_email
from .repository import DeadLetterStore
from .retry import deliver_with_retry
from .schemas import OrderConfirmation

logger = structlog.get_logger(__name__)


class OrderConfirmationConsumer:
    """Consuming side of the notification channel: summary in, email out."""

    def __init__(
        self,
        publisher: EmailTopicPublisher,
        dead_letters: DeadLetterStore,
        max_attempts: Optional[int] = None,
        backoff: Optional[float] = None,
    ):
        self.publisher = publisher
        self.dead_letters = dead_letters
        self.max_attempts = max_attempts if max_attempts is not None else int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "3"))
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.backoff = backoff if backoff is not None else float(os.getenv("NOTIFICATION_RETRY_BACKOFF_SECONDS", "0.5"))

    async def handle(self, raw: Union[str, bytes]) -> bool:
        """Returns True when the confirmation email was published."""
        payload = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        try:
            confirmation = OrderConfirmation.model_validate_json(payload)
        except ValidationError as e:
            logger.error("order_confirmation_malformed", error=str(e))
            await self.dead_letters.record(source="consume", payload=payload, error=str(e), attempts=1)
            return False

        message = render_confirmation_email(confirmation)
        error = await deliver_with_retry(
            lambda: self.publisher.publish(message),
            stage="consume",
            max_attempts=self.max_attempts,
            backoff=self.backoff,
            order_id=confirmation.order_id,
        )
        if error is not None:
            await self.dead_letters.record(
                source="consume", payload=payload, error=str(error), attempts=self.max_attempts
            )
            return False

        logger.info("order_confirmation_consumed", order_id=confirmation.order_id)
        return True
