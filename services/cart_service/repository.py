from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shared.config.database import utcnow

from .models import Cart, CartItem


class CartRepository:
    """Cart reads and writes. Nothing here commits; callers own the transaction."""

    @staticmethod
    async def get_by_user(db: AsyncSession, user_id: int) -> Optional[Cart]:
        """Loads the cart, its lines and each line's product."""
        result = await db.execute(
            select(Cart)
            .options(selectinload(Cart.items).selectinload(CartItem.product))
            .where(Cart.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def create(db: AsyncSession, user_id: int) -> Cart:
        cart = Cart(user_id=user_id, items=[])
        db.add(cart)
        await db.flush()
        return cart

    @staticmethod
    async def get_item(db: AsyncSession, cart_id: int, product_id: int) -> Optional[CartItem]:
        result = await db.execute(
            select(CartItem).where(CartItem.cart_id == cart_id, CartItem.product_id == product_id)
        )
        return result.scalars().first()

    @staticmethod
    async def add_item(db: AsyncSession, item: CartItem) -> CartItem:
        db.add(item)
        await db.flush()
        return item

    @staticmethod
    async def delete_item(db: AsyncSession, item: CartItem) -> None:
        await db.execute(delete(CartItem).where(CartItem.id == item.id))

    @staticmethod
    async def clear_items(db: AsyncSession, cart_id: int) -> int:
        result = await db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
        return result.rowcount

    @staticmethod
    async def touch(db: AsyncSession, cart_id: int) -> None:
        await db.execute(update(Cart).where(Cart.id == cart_id).values(updated_at=utcnow()))
