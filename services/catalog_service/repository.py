from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shared.config.database import utcnow

from .models import Category, Product


def _products():
    return select(Product).options(selectinload(Product.category))


class ProductRepository:

    @staticmethod
    async def create_product(db: AsyncSession, product: Product) -> Product:
        db.add(product)
        await db.commit()
        return await ProductRepository.get_product_by_id(db, product.id)

    @staticmethod
    async def update_product(db: AsyncSession, product: Product) -> Product:
        await db.commit()
        return await ProductRepository.get_product_by_id(db, product.id)

    @staticmethod
    async def delete_product(db: AsyncSession, product_id: int) -> bool:
        result = await db.execute(delete(Product).where(Product.id == product_id))
        await db.commit()
        return result.rowcount > 0

    @staticmethod
    async def get_all_products(db: AsyncSession, query: Optional[str] = None) -> list[Product]:
        stmt = _products().order_by(Product.id)
        if query:
            stmt = stmt.where(Product.name.ilike(f"%{query}%"))
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_product_by_id(db: AsyncSession, product_id: int) -> Optional[Product]:
        result = await db.execute(
            _products().where(Product.id == product_id).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_product_fresh(db: AsyncSession, product_id: int) -> Optional[Product]:
        """Re-reads the row from the database, overwriting any identity-map copy."""
        result = await db.execute(
            select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_product_by_name(db: AsyncSession, name: str) -> Optional[Product]:
        result = await db.execute(_products().where(func.lower(Product.name) == name.lower()))
        return result.scalars().first()

    @staticmethod
    async def get_products_in_price_range(
        db: AsyncSession, min_price: Decimal, max_price: Decimal
    ) -> list[Product]:
        result = await db.execute(
            _products().where(Product.price.between(min_price, max_price)).order_by(Product.price)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_low_stock_products(db: AsyncSession, threshold: int) -> list[Product]:
        result = await db.execute(
            _products().where(Product.stock_quantity <= threshold).order_by(Product.stock_quantity)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_products_by_category(db: AsyncSession, category_id: int) -> list[Product]:
        result = await db.execute(_products().where(Product.category_id == category_id).order_by(Product.id))
        return list(result.scalars().all())

    @staticmethod
    async def count(db: AsyncSession) -> int:
        return await db.scalar(select(func.count(Product.id)))

    @staticmethod
    async def count_low_stock(db: AsyncSession, threshold: int) -> int:
        return await db.scalar(select(func.count(Product.id)).where(Product.stock_quantity <= threshold))

    @staticmethod
    async def count_by_category(db: AsyncSession, category_id: int) -> int:
        return await db.scalar(select(func.count(Product.id)).where(Product.category_id == category_id))

    @staticmethod
    async def decrement_stock(db: AsyncSession, product_id: int, quantity: int) -> bool:
        """
        Decrement-if-sufficient as one conditional UPDATE. Returns False when
        the row no longer has `quantity` units, leaving it untouched.
        Does not commit: the caller's unit of work owns the transaction.
        """
        result = await db.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= quantity)
            .values(stock_quantity=Product.stock_quantity - quantity, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class CategoryRepository:

    @staticmethod
    async def create_category(db: AsyncSession, category: Category) -> Category:
        db.add(category)
        await db.commit()
        await db.refresh(category)
        return category

    @staticmethod
    async def update_category(db: AsyncSession, category: Category) -> Category:
        await db.commit()
        await db.refresh(category)
        return category

    @staticmethod
    async def delete_category(db: AsyncSession, category: Category) -> None:
        await db.delete(category)
        await db.commit()

    @staticmethod
    async def get_all_categories(db: AsyncSession) -> list[Category]:
        result = await db.execute(select(Category).order_by(Category.name))
        return list(result.scalars().all())

    @staticmethod
    async def get_category_by_id(db: AsyncSession, category_id: int) -> Optional[Category]:
        result = await db.execute(select(Category).where(Category.id == category_id))
        return result.scalars().first()

    @staticmethod
    async def get_category_by_name(db: AsyncSession, name: str) -> Optional[Category]:
        result = await db.execute(select(Category).where(func.lower(Category.name) == name.lower()))
        return result.scalars().first()

    @staticmethod
    async def count(db: AsyncSession) -> int:
        return await db.scalar(select(func.count(Category.id)))
