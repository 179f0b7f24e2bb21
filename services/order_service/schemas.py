from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from services.payment_service.models import PaymentStatus

from .models import OrderStatus


class PlaceOrderRequest(BaseModel):
    """Checkout request: shipping snapshot plus payment details."""

    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)
    country: str = Field(min_length=1)
    payment_method: str = Field(min_length=1)
    payment_method_token: str = Field(min_length=1)


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: str
    quantity: int
    price_at_purchase: Decimal
    subtotal: Decimal


class OrderResponse(BaseModel):
    id: int
    user_id: int
    username: str
    order_date: datetime
    total_amount: Decimal
    status: OrderStatus
    items: List[OrderItemResponse] = []
    shipping_street: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    shipping_country: Optional[str] = None
    payment_method: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    transaction_id: Optional[str] = None
