from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import BadRequestError, ConflictError, NotFoundError

from .models import Category, Product
from .repository import CategoryRepository, ProductRepository
from .schemas import CategoryCreate, CategoryResponse, ProductCreate, ProductResponse

logger = structlog.get_logger(__name__)


def to_product_response(product: Product) -> ProductResponse:
    """Snapshot of a product; `category` must have been loaded by the query."""
    return ProductResponse(
        id=product.id,
        name=product.name,
        description=product.description,
        price=product.price,
        stock_quantity=product.stock_quantity,
        image_url=product.image_url,
        category_id=product.category_id,
        category_name=product.category.name if product.category is not None else None,
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


class ProductService:

    @staticmethod
    def _validate(data: ProductCreate, prefix: str = "") -> None:
        if data.price < 0:
            raise BadRequestError(f"{prefix}Product price cannot be negative.")
        if data.stock_quantity < 0:
            raise BadRequestError(f"{prefix}Stock quantity cannot be negative.")

    @staticmethod
    async def _resolve_category(db: AsyncSession, category_id: Optional[int]) -> Optional[Category]:
        if category_id is None:
            return None
        return await CategoryService.get_category_entity(db, category_id)

    @staticmethod
    async def create_product(db: AsyncSession, data: ProductCreate) -> ProductResponse:
        ProductService._validate(data)
        category = await ProductService._resolve_category(db, data.category_id)
        product = Product(
            name=data.name,
            description=data.description,
            price=data.price,
            stock_quantity=data.stock_quantity,
            image_url=data.image_url,
            category_id=category.id if category else None,
        )
        product = await ProductRepository.create_product(db, product)
        logger.info("product_created", product_id=product.id, name=product.name)
        return to_product_response(product)

    @staticmethod
    async def update_product(db: AsyncSession, product_id: int, data: ProductCreate) -> ProductResponse:
        product = await ProductService.get_product_entity(db, product_id)
        ProductService._validate(data, prefix="Updated ")
        category = await ProductService._resolve_category(db, data.category_id)

        product.name = data.name
        product.description = data.description
        product.price = data.price
        product.stock_quantity = data.stock_quantity
        product.image_url = data.image_url
        product.category_id = category.id if category else None  # None unsets the category

        return to_product_response(await ProductRepository.update_product(db, product))

    @staticmethod
    async def delete_product(db: AsyncSession, product_id: int) -> None:
        await ProductService.get_product_entity(db, product_id)
        try:
            await ProductRepository.delete_product(db, product_id)
        except IntegrityError:
            await db.rollback()
            raise ConflictError(f"Product {product_id} is referenced by carts or orders and cannot be deleted.")
        logger.info("product_deleted", product_id=product_id)

    @staticmethod
    async def list_products(db: AsyncSession, query: Optional[str] = None) -> list[ProductResponse]:
        return [to_product_response(p) for p in await ProductRepository.get_all_products(db, query)]

    @staticmethod
    async def get_product_entity(db: AsyncSession, product_id: int) -> Product:
        product = await ProductRepository.get_product_by_id(db, product_id)
        if not product:
            raise NotFoundError(f"Product not found with ID: {product_id}")
        return product

    @staticmethod
    async def get_product_by_id(db: AsyncSession, product_id: int) -> ProductResponse:
        return to_product_response(await ProductService.get_product_entity(db, product_id))

    @staticmethod
    async def get_product_by_name(db: AsyncSession, name: str) -> ProductResponse:
        product = await ProductRepository.get_product_by_name(db, name)
        if not product:
            raise NotFoundError(f"Product not found with name: {name}")
        return to_product_response(product)

    @staticmethod
    async def get_products_in_price_range(
        db: AsyncSession, min_price: Decimal, max_price: Decimal
    ) -> list[ProductResponse]:
        if min_price < 0 or max_price < 0 or min_price > max_price:
            raise BadRequestError("Invalid price range.")
        products = await ProductRepository.get_products_in_price_range(db, min_price, max_price)
        return [to_product_response(p) for p in products]

    @staticmethod
    async def get_low_stock_products(db: AsyncSession, threshold: int) -> list[ProductResponse]:
        if threshold < 0:
            raise BadRequestError("Stock threshold cannot be negative.")
        return [to_product_response(p) for p in await ProductRepository.get_low_stock_products(db, threshold)]

    @staticmethod
    async def get_products_by_category(db: AsyncSession, category_id: int) -> list[ProductResponse]:
        await CategoryService.get_category_entity(db, category_id)
        products = await ProductRepository.get_products_by_category(db, category_id)
        return [to_product_response(p) for p in products]


class CategoryService:

    @staticmethod
    async def get_category_entity(db: AsyncSession, category_id: int) -> Category:
        category = await CategoryRepository.get_category_by_id(db, category_id)
        if not category:
            raise NotFoundError(f"Category not found with ID: {category_id}")
        return category

    @staticmethod
    async def list_categories(db: AsyncSession) -> list[CategoryResponse]:
        return [CategoryResponse.model_validate(c) for c in await CategoryRepository.get_all_categories(db)]

    @staticmethod
    async def get_category_by_id(db: AsyncSession, category_id: int) -> CategoryResponse:
        return CategoryResponse.model_validate(await CategoryService.get_category_entity(db, category_id))

    @staticmethod
    async def get_category_by_name(db: AsyncSession, name: str) -> CategoryResponse:
        category = await CategoryRepository.get_category_by_name(db, name)
        if not category:
            raise NotFoundError(f"Category not found with name: {name}")
        return CategoryResponse.model_validate(category)

    @staticmethod
    async def create_category(db: AsyncSession, data: CategoryCreate) -> CategoryResponse:
        if await CategoryRepository.get_category_by_name(db, data.name):
            raise ConflictError(f"Category with name '{data.name}' already exists.")
        category = await CategoryRepository.create_category(
            db, Category(name=data.name, description=data.description)
        )
        logger.info("category_created", category_id=category.id, name=category.name)
        return CategoryResponse.model_validate(category)

    @staticmethod
    async def update_category(db: AsyncSession, category_id: int, data: CategoryCreate) -> CategoryResponse:
        category = await CategoryService.get_category_entity(db, category_id)
        if category.name.lower() != data.name.lower() and await CategoryRepository.get_category_by_name(db, data.name):
            raise ConflictError(f"Category with name '{data.name}' already exists.")
        category.name = data.name
        category.description = data.description
        return CategoryResponse.model_validate(await CategoryRepository.update_category(db, category))

    @staticmethod
    async def delete_category(db: AsyncSession, category_id: int) -> None:
        category = await CategoryService.get_category_entity(db, category_id)
        if await ProductRepository.count_by_category(db, category_id) > 0:
            raise BadRequestError(
                "Cannot delete category with associated products. Reassign or delete products first."
            )
        await CategoryRepository.delete_category(db, category)
        logger.info("category_deleted", category_id=category_id)
