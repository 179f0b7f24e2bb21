"""
Payment gateway adapter.

The order workflow charges a card through a `PaymentGateway` and only ever
sees one of four normalized outcomes. Amounts cross this boundary as integer
minor units (cents); the conversion is exact and refuses to round.
"""
import abc
import os
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

import httpx
import structlog

logger = structlog.get_logger(__name__)

# ISO 4217 currencies without a minor unit
ZERO_DECIMAL_CURRENCIES = frozenset(
    {"bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga", "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf"}
)

# Largest amount most processors accept, in minor units
MAX_MINOR_UNITS = 99_999_999


class AmountConversionError(ValueError):
    """The amount has no exact integer minor-unit representation."""


def to_minor_units(amount: Decimal, currency: str) -> int:
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise AmountConversionError(f"Invalid amount: {amount!r}") from exc

    if not value.is_finite() or value < 0:
        raise AmountConversionError(f"Invalid amount: {amount}")

    exponent = 0 if currency.lower() in ZERO_DECIMAL_CURRENCIES else 2
    scaled = value.scaleb(exponent)
    if scaled != scaled.to_integral_value():
        raise AmountConversionError(
            f"Amount {amount} cannot be represented exactly in {currency.upper()} minor units"
        )
    minor = int(scaled)
    if minor > MAX_MINOR_UNITS:
        raise AmountConversionError(f"Amount {amount} exceeds the maximum chargeable amount")
    return minor


@dataclass(frozen=True)
class Succeeded:
    transaction_id: str


@dataclass(frozen=True)
class Pending:
    transaction_id: str


@dataclass(frozen=True)
class Declined:
    reason: str


@dataclass(frozen=True)
class GatewayError:
    reason: str


ChargeOutcome = Union[Succeeded, Pending, Declined, GatewayError]


class PaymentGateway(abc.ABC):

    @abc.abstractmethod
    async def charge(
        self,
        amount_minor: int,
        currency: str,
        token: str,
        idempotency_key: str,
        receipt_email: Optional[str] = None,
    ) -> ChargeOutcome:
        ...

    @abc.abstractmethod
    async def cancel(self, outcome: ChargeOutcome) -> None:
        """Reverse an accepted charge (refund a success, cancel a pending intent)."""


class SimulatedPaymentGateway(PaymentGateway):
    """
    In-process gateway with a fixed outcome. Repeated charges with the same
    idempotency key return the same transaction id, like a real processor.
    Only the most recent `max_remembered_keys` keys are remembered.
    """

    def __init__(self, outcome: str = "succeeded", max_remembered_keys: Optional[int] = None):
        self.outcome = outcome
        self.max_remembered_keys = (
            max_remembered_keys
            if max_remembered_keys is not None
            else int(os.getenv("PAYMENT_SIMULATED_MAX_KEYS", "10000"))
        )
        if self.max_remembered_keys < 1:
            raise ValueError("max_remembered_keys must be at least 1")
        self.charges: OrderedDict[str, ChargeOutcome] = OrderedDict()

    async def charge(self, amount_minor, currency, token, idempotency_key, receipt_email=None):
        if idempotency_key in self.charges:
            self.charges.move_to_end(idempotency_key)
            return self.charges[idempotency_key]

        transaction_id = f"sim_{uuid.uuid4().hex}"
        if self.outcome == "succeeded":
            result = Succeeded(transaction_id)
        elif self.outcome == "pending":
            result = Pending(transaction_id)
        elif self.outcome == "declined":
            result = Declined("Card declined by simulated gateway")
        else:
            result = GatewayError("Simulated gateway failure")

        self.charges[idempotency_key] = result
        while len(self.charges) > self.max_remembered_keys:
            self.charges.popitem(last=False)
        logger.info("simulated_charge", amount_minor=amount_minor, currency=currency, outcome=type(result).__name__)
        return result

    async def cancel(self, outcome):
        logger.info(
            "simulated_charge_cancelled",
            outcome=type(outcome).__name__,
            transaction_id=getattr(outcome, "transaction_id", None),
        )


class HttpPaymentGateway(PaymentGateway):
    """
    Payment-intent style processor API (form-encoded, bearer secret key,
    Idempotency-Key header). Confirms the intent in the same call.
    """

    PENDING_STATUSES = {"requires_action", "requires_payment_method", "requires_confirmation", "processing"}

    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
            transport=self.transport,
        )

    async def charge(self, amount_minor, currency, token, idempotency_key, receipt_email=None):
        data = {
            "amount": str(amount_minor),
            "currency": currency.lower(),
            "payment_method": token,
            "confirm": "true",
        }
        if receipt_email:
            data["receipt_email"] = receipt_email

        try:
            async with self._client() as client:
                resp = await client.post(
                    "/v1/payment_intents",
                    data=data,
                    headers={"Idempotency-Key": idempotency_key},
                )
        except httpx.HTTPError as e:
            return GatewayError(f"Payment gateway unreachable: {e}")

        try:
            body = resp.json()
        except ValueError:
            body = {}

        if resp.status_code >= 400:
            error = body.get("error", {}) if isinstance(body, dict) else {}
            reason = error.get("message") or f"Gateway responded with HTTP {resp.status_code}"
            if resp.status_code == 402 or error.get("type") == "card_error":
                return Declined(reason)
            return GatewayError(reason)

        intent_id = body.get("id")
        status = body.get("status")
        if not intent_id:
            return GatewayError("Gateway response carried no payment intent id")
        if status == "succeeded":
            return Succeeded(intent_id)
        if status in self.PENDING_STATUSES:
            return Pending(intent_id)
        return GatewayError(f"Unrecognized payment intent status: {status}")

    async def cancel(self, outcome):
        async with self._client() as client:
            if isinstance(outcome, Succeeded):
                resp = await client.post("/v1/refunds", data={"payment_intent": outcome.transaction_id})
            elif isinstance(outcome, Pending):
                resp = await client.post(f"/v1/payment_intents/{outcome.transaction_id}/cancel")
            else:
                return
            resp.raise_for_status()


def build_payment_gateway() -> PaymentGateway:
    kind = os.getenv("PAYMENT_GATEWAY", "simulated").lower()
    if kind == "http":
        base_url = os.getenv("PAYMENT_GATEWAY_URL", "https://api.stripe.com")
        api_key = os.getenv("PAYMENT_GATEWAY_API_KEY")
        if not api_key:
            raise ValueError("PAYMENT_GATEWAY_API_KEY must be set when PAYMENT_GATEWAY=http")
        return HttpPaymentGateway(base_url, api_key, timeout=float(os.getenv("PAYMENT_TIMEOUT_SECONDS", "10")))
    if kind != "simulated":
        raise ValueError(f"Unknown PAYMENT_GATEWAY: {kind}")
    return SimulatedPaymentGateway(os.getenv("PAYMENT_SIMULATED_OUTCOME", "succeeded").lower())
