import asyncio
import time
import uuid
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from services.auth_service.repository import UserRepository
from services.cart_service.repository import CartRepository
from services.catalog_service.repository import ProductRepository
from services.notification_service.schemas import OrderConfirmation
from services.payment_service.gateway import Pending, Succeeded
from services.payment_service.models import PaymentStatus
from services.payment_service.service import PaymentService
from shared.errors import BadRequestError, ConflictError, NotFoundError
from shared.observability import (
    ecomm_checkout_duration_seconds,
    ecomm_checkout_total,
    ecomm_stock_conflicts_total,
)
from shared.security import CurrentUser

from .models import TERMINAL_STATUSES, Address, Order, OrderItem, OrderStatus
from .repository import OrderRepository
from .schemas import OrderItemResponse, OrderResponse, PlaceOrderRequest
from .unit_of_work import UnitOfWork, is_serialization_failure

logger = structlog.get_logger(__name__)

SHIPPING_ADDRESS_TYPE = "SHIPPING_ORDER"


def to_order_response(order: Order) -> OrderResponse:
    """Order must be loaded with user, items (and their products), address and payment."""
    address = order.shipping_address
    payment = order.payment
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        username=order.user.username,
        order_date=order.order_date,
        total_amount=order.total_amount,
        status=order.status,
        items=[
            OrderItemResponse(
                id=item.id,
                product_id=item.product_id,
                product_name=item.product.name,
                quantity=item.quantity,
                price_at_purchase=item.price_at_purchase,
                subtotal=item.subtotal,
            )
            for item in order.items
        ],
        shipping_street=address.street if address else None,
        shipping_city=address.city if address else None,
        shipping_state=address.state if address else None,
        shipping_postal_code=address.postal_code if address else None,
        shipping_country=address.country if address else None,
        payment_method=payment.payment_method if payment else None,
        payment_status=payment.status if payment else None,
        transaction_id=payment.transaction_id if payment else None,
    )


def _insufficient_stock(name: str, available: int) -> BadRequestError:
    return BadRequestError(f"Insufficient stock for product: {name}. Available stock: {available}")


class OrderWorkflow:
    """
    Turns a user's cart into a committed order.

    Collaborators are injected: the unit of work owns the transaction, the
    payment service owns the gateway and the dispatcher receives the order
    confirmation once the commit is durable.
    """

    def __init__(self, unit_of_work: UnitOfWork, payments: PaymentService, dispatcher):
        self.unit_of_work = unit_of_work
        self.payments = payments
        self.dispatcher = dispatcher

    async def place_order(self, user_id: int, request: PlaceOrderRequest) -> OrderResponse:
        # One key per placement: a re-run unit of work reuses the same charge
        idempotency_key = f"order-{user_id}-{uuid.uuid4().hex}"
        accepted = []
        committed = False
        start_time = time.perf_counter()

        try:
            order, email = await self.unit_of_work.run(
                lambda db: self._place(db, user_id, request, idempotency_key, accepted)
            )
            committed = True
        except Exception as e:
            logger.warning("order_placement_failed", user_id=user_id, error=str(e))
            if isinstance(e, DBAPIError) and is_serialization_failure(e):
                raise ConflictError("Order could not be placed due to concurrent checkouts. Please retry.") from e
            raise
        finally:
            ecomm_checkout_duration_seconds.observe(time.perf_counter() - start_time)
            if not committed:
                ecomm_checkout_total.labels(status="failed").inc()
                # Also runs when the placement task is cancelled mid-flight
                for outcome in accepted:
                    await asyncio.shield(self.payments.compensate(outcome))

        ecomm_checkout_total.labels(status="success").inc()
        logger.info(
            "order_placed",
            order_id=order.id,
            user_id=user_id,
            total_amount=str(order.total_amount),
            status=order.status.value,
        )

        # Strictly after commit; the dispatcher never raises
        self.dispatcher.enqueue(OrderConfirmation.from_order(order, email=email))
        return order

    async def _place(self, db: AsyncSession, user_id: int, request: PlaceOrderRequest, idempotency_key: str, accepted: list):
        user = await UserRepository.get_by_id(db, user_id)
        if user is None:
            raise NotFoundError(f"User not found with id: {user_id}")

        cart = await CartRepository.get_by_user(db, user_id)
        if cart is None:
            raise BadRequestError("Can not place order. No active cart found")
        if not cart.items:
            raise BadRequestError(f"No cart items found for user {user_id}")

        # Stable lock order across concurrent checkouts
        lines = sorted(cart.items, key=lambda line: line.product_id)

        order_items = []
        total_amount = Decimal("0")
        for line in lines:
            product = await ProductRepository.get_product_fresh(db, line.product_id)
            if product is None:
                raise NotFoundError(f"Product not found with id: {line.product_id}")
            if line.quantity > product.stock_quantity:
                raise _insufficient_stock(product.name, product.stock_quantity)

            order_items.append(
                OrderItem(
                    product_id=product.id,
                    product=product,
                    quantity=line.quantity,
                    price_at_purchase=line.price_at_addition,
                )
            )
            total_amount += line.price_at_addition * line.quantity

        for line in lines:
            if not await ProductRepository.decrement_stock(db, line.product_id, line.quantity):
                ecomm_stock_conflicts_total.inc()
                product = await ProductRepository.get_product_fresh(db, line.product_id)
                raise _insufficient_stock(product.name, product.stock_quantity)

        address = Address(
            user_id=None,
            street=request.street,
            city=request.city,
            state=request.state,
            postal_code=request.postal_code,
            country=request.country,
            address_type=SHIPPING_ADDRESS_TYPE,
        )

        outcome = await self.payments.charge(
            total_amount,
            request.payment_method_token,
            idempotency_key,
            receipt_email=user.email,
        )
        if isinstance(outcome, (Succeeded, Pending)) and outcome not in accepted:
            accepted.append(outcome)
        payment = PaymentService.to_payment(outcome, total_amount, request.payment_method)

        order = Order(
            user_id=user.id,
            user=user,
            total_amount=total_amount,
            status=OrderStatus.PROCESSING if payment.status == PaymentStatus.COMPLETED else OrderStatus.PENDING,
            items=order_items,
            shipping_address=address,
            payment=payment,
        )
        db.add(order)
        await db.flush()

        await CartRepository.clear_items(db, cart.id)
        await CartRepository.touch(db, cart.id)

        return to_order_response(order), user.email

    @staticmethod
    async def update_order_status(db: AsyncSession, order_id: int, new_status: Optional[OrderStatus]) -> OrderResponse:
        order = await OrderRepository.get_order(db, order_id)
        if order is None:
            raise NotFoundError(f"Order not found with id: {order_id}")
        if new_status is None:
            raise BadRequestError("Order status must not be null")

        previous = order.status
        if previous in TERMINAL_STATUSES and new_status != previous:
            logger.warning(
                "order_left_terminal_status",
                order_id=order_id,
                from_status=previous.value,
                to_status=new_status.value,
            )

        order.status = new_status
        await db.commit()
        logger.info("order_status_updated", order_id=order_id, from_status=previous.value, to_status=new_status.value)
        return to_order_response(await OrderRepository.get_order(db, order_id))

    @staticmethod
    async def get_order_by_id(db: AsyncSession, order_id: int, caller: Optional[CurrentUser] = None) -> OrderResponse:
        order = await OrderRepository.get_order(db, order_id)
        # Other users' orders are reported as missing rather than forbidden
        if order is None or (caller is not None and not caller.is_admin and order.user_id != caller.id):
            raise NotFoundError(f"Order not found with id: {order_id}")
        return to_order_response(order)

    @staticmethod
    async def get_user_orders(db: AsyncSession, user_id: int) -> list[OrderResponse]:
        if not await OrderRepository.user_exists(db, user_id):
            raise NotFoundError(f"User not found with id: {user_id}")
        return [to_order_response(o) for o in await OrderRepository.get_orders_by_user(db, user_id)]

    @staticmethod
    async def get_all_orders(db: AsyncSession) -> list[OrderResponse]:
        return [to_order_response(o) for o in await OrderRepository.get_all_orders(db)]
