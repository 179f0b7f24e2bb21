from datetime import datetime
from decimal import Decimal
from typing import List

from pydantic import BaseModel


class AdminOrderSummary(BaseModel):
    id: int
    customer_name: str
    order_date: datetime
    total_amount: Decimal
    status: str
    item_count: int


class AdminDashboardStats(BaseModel):
    total_orders: int
    total_users: int
    total_products: int
    total_categories: int
    total_revenue: Decimal
    pending_orders: int
    low_stock_products: int
    recent_orders: List[AdminOrderSummary] = []
