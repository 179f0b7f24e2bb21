from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel


class OrderConfirmationItem(BaseModel):
    id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


class OrderConfirmation(BaseModel):
    """Order summary handed to the notification channel after commit."""

    order_id: int
    username: str
    email: Optional[str] = None
    total_amount: Decimal
    status: str
    items: List[OrderConfirmationItem] = []

    @classmethod
    def from_order(cls, order, email: Optional[str] = None) -> "OrderConfirmation":
        return cls(
            order_id=order.id,
            username=order.username,
            email=email,
            total_amount=order.total_amount,
            status=order.status.value if hasattr(order.status, "value") else str(order.status),
            items=[
                OrderConfirmationItem(
                    id=item.id,
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    unit_price=item.price_at_purchase,
                    subtotal=item.subtotal,
                )
                for item in order.items
            ],
        )


class DeadLetterResponse(BaseModel):
    id: int
    source: str
    payload: str
    error: str
    attempts: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
