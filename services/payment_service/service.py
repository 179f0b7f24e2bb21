import asyncio
import os
from decimal import Decimal
from typing import Optional

import structlog

from shared.errors import PaymentRequiredError
from shared.observability import ecomm_payment_outcomes_total

from .gateway import (
    AmountConversionError,
    ChargeOutcome,
    Declined,
    GatewayError,
    Pending,
    PaymentGateway,
    Succeeded,
    to_minor_units,
)
from .models import Payment, PaymentStatus

logger = structlog.get_logger(__name__)

OUTCOME_LABELS = {
    Succeeded: "succeeded",
    Pending: "pending",
    Declined: "declined",
    GatewayError: "gateway_error",
}


class PaymentService:
    """Charges through a gateway and turns the outcome into a Payment row."""

    def __init__(self, gateway: PaymentGateway, currency: Optional[str] = None, timeout: Optional[float] = None):
        self.gateway = gateway
        self.currency = currency or os.getenv("PAYMENT_CURRENCY", "usd")
        self.timeout = timeout if timeout is not None else float(os.getenv("PAYMENT_TIMEOUT_SECONDS", "10"))

    async def charge(
        self,
        amount: Decimal,
        token: str,
        idempotency_key: str,
        receipt_email: Optional[str] = None,
    ) -> ChargeOutcome:
        try:
            amount_minor = to_minor_units(amount, self.currency)
        except AmountConversionError as e:
            logger.warning("payment_amount_not_convertible", amount=str(amount), currency=self.currency)
            raise PaymentRequiredError(str(e)) from e

        try:
            outcome = await asyncio.wait_for(
                self.gateway.charge(amount_minor, self.currency, token, idempotency_key, receipt_email),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            # The processor may still accept it; the key is what reconciliation looks up
            logger.warning(
                "payment_charge_outcome_unknown",
                reason="timeout",
                timeout=self.timeout,
                idempotency_key=idempotency_key,
                amount_minor=amount_minor,
                currency=self.currency,
            )
            outcome = GatewayError(f"Payment gateway timed out after {self.timeout}s")
        except Exception as e:
            logger.error(
                "payment_gateway_exception",
                error=str(e),
                idempotency_key=idempotency_key,
                exc_info=True,
            )
            outcome = GatewayError(f"Payment gateway failure: {e}")

        ecomm_payment_outcomes_total.labels(outcome=OUTCOME_LABELS.get(type(outcome), "gateway_error")).inc()
        logger.info(
            "payment_charge_attempted",
            amount_minor=amount_minor,
            currency=self.currency,
            outcome=type(outcome).__name__,
        )
        return outcome

    @staticmethod
    def to_payment(outcome: ChargeOutcome, amount: Decimal, payment_method: str) -> Payment:
        if isinstance(outcome, Succeeded):
            status = PaymentStatus.COMPLETED
        elif isinstance(outcome, Pending):
            status = PaymentStatus.PENDING
        elif isinstance(outcome, Declined):
            raise PaymentRequiredError(f"Payment declined: {outcome.reason}")
        elif isinstance(outcome, GatewayError):
            raise PaymentRequiredError(f"Payment failed: {outcome.reason}")
        else:
            raise PaymentRequiredError("Payment failed: unrecognized gateway outcome")

        return Payment(
            amount=amount,
            payment_method=payment_method,
            transaction_id=outcome.transaction_id,
            status=status,
        )

    async def compensate(self, outcome: ChargeOutcome) -> None:
        """Best-effort reversal of an accepted charge whose order never committed."""
        try:
            await asyncio.wait_for(self.gateway.cancel(outcome), timeout=self.timeout)
            logger.warning("payment_compensated", transaction_id=getattr(outcome, "transaction_id", None))
        except Exception as e:
            logger.error(
                "payment_compensation_failed",
                transaction_id=getattr(outcome, "transaction_id", None),
                error=str(e),
            )
