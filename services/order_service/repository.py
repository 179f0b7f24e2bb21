from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from services.auth_service.models import User

from .models import Order, OrderItem, OrderStatus


def _orders_with_details():
    """Everything an OrderResponse needs, loaded up front."""
    return select(Order).options(
        selectinload(Order.user),
        selectinload(Order.items).selectinload(OrderItem.product),
        selectinload(Order.shipping_address),
        selectinload(Order.payment),
    )


class OrderRepository:

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int) -> Optional[Order]:
        result = await db.execute(
            _orders_with_details().where(Order.id == order_id).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_orders_by_user(db: AsyncSession, user_id: int) -> list[Order]:
        result = await db.execute(
            _orders_with_details().where(Order.user_id == user_id).order_by(Order.order_date.desc(), Order.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_all_orders(db: AsyncSession) -> list[Order]:
        result = await db.execute(_orders_with_details().order_by(Order.order_date.desc(), Order.id.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def get_recent_orders(db: AsyncSession, limit: int = 10) -> list[Order]:
        result = await db.execute(
            select(Order)
            .options(selectinload(Order.user), selectinload(Order.items))
            .order_by(Order.order_date.desc(), Order.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def count(db: AsyncSession) -> int:
        return await db.scalar(select(func.count(Order.id)))

    @staticmethod
    async def count_by_status(db: AsyncSession, status: OrderStatus) -> int:
        return await db.scalar(select(func.count(Order.id)).where(Order.status == status))

    @staticmethod
    async def sum_total_by_status(db: AsyncSession, status: OrderStatus) -> Decimal:
        total = await db.scalar(select(func.sum(Order.total_amount)).where(Order.status == status))
        return Decimal(total) if total is not None else Decimal("0")

    @staticmethod
    async def user_exists(db: AsyncSession, user_id: int) -> bool:
        return await db.scalar(select(func.count(User.id)).where(User.id == user_id)) > 0
