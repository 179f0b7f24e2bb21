from decimal import Decimal

import pytest

from conftest import make_product
from services.catalog_service.repository import ProductRepository
from services.catalog_service.schemas import CategoryCreate, ProductCreate
from services.catalog_service.service import CategoryService, ProductService
from shared.errors import BadRequestError, ConflictError, NotFoundError


def product_payload(**overrides) -> ProductCreate:
    data = {"name": "Kettle", "description": "1.7L", "price": Decimal("39.90"), "stock_quantity": 12}
    data.update(overrides)
    return ProductCreate(**data)


class TestProducts:

    async def test_create_with_category(self, db, category):
        created = await ProductService.create_product(db, product_payload(category_id=category.id))
        assert created.id is not None
        assert created.category_name == "Kitchen"
        assert created.price == Decimal("39.90")

    async def test_create_rejects_negative_values(self, db):
        with pytest.raises(BadRequestError):
            await ProductService.create_product(db, product_payload(price=Decimal("-1.00")))
        with pytest.raises(BadRequestError):
            await ProductService.create_product(db, product_payload(stock_quantity=-3))

    async def test_create_with_unknown_category(self, db):
        with pytest.raises(NotFoundError):
            await ProductService.create_product(db, product_payload(category_id=999))

    async def test_update(self, db, session_factory):
        product = await make_product(session_factory, "Kettle", "39.90", 12)
        updated = await ProductService.update_product(db, product.id, product_payload(price=Decimal("35.00")))
        assert updated.price == Decimal("35.00")

        with pytest.raises(BadRequestError) as exc:
            await ProductService.update_product(db, product.id, product_payload(stock_quantity=-1))
        assert exc.value.detail.startswith("Updated ")

    async def test_lookup_by_name_is_case_insensitive(self, db, mug):
        found = await ProductService.get_product_by_name(db, "mUg")
        assert found.id == mug.id
        with pytest.raises(NotFoundError):
            await ProductService.get_product_by_name(db, "Teapot")

    async def test_keyword_filter(self, db, session_factory, mug):
        await make_product(session_factory, "Coffee Grinder", "49.00", 2)
        names = [p.name for p in await ProductService.list_products(db, "coffee")]
        assert names == ["Coffee Grinder"]
        assert len(await ProductService.list_products(db)) == 2

    async def test_price_range(self, db, session_factory, mug):
        await make_product(session_factory, "Grinder", "49.00", 2)
        in_range = await ProductService.get_products_in_price_range(db, Decimal("5"), Decimal("20"))
        assert [p.name for p in in_range] == ["Mug"]

        for low, high in [("-1", "10"), ("10", "-1"), ("20", "5")]:
            with pytest.raises(BadRequestError):
                await ProductService.get_products_in_price_range(db, Decimal(low), Decimal(high))

    async def test_low_stock(self, db, session_factory, mug):
        await make_product(session_factory, "Grinder", "49.00", 50)
        assert [p.name for p in await ProductService.get_low_stock_products(db, 10)] == ["Mug"]
        with pytest.raises(BadRequestError):
            await ProductService.get_low_stock_products(db, -1)

    async def test_by_category(self, db, session_factory, category):
        await make_product(session_factory, "Pan", "25.00", 3, category_id=category.id)
        await make_product(session_factory, "Sock", "3.00", 30)
        assert [p.name for p in await ProductService.get_products_by_category(db, category.id)] == ["Pan"]
        with pytest.raises(NotFoundError):
            await ProductService.get_products_by_category(db, 999)

    async def test_delete(self, db, mug):
        await ProductService.delete_product(db, mug.id)
        with pytest.raises(NotFoundError):
            await ProductService.get_product_by_id(db, mug.id)


class TestConditionalDecrement:

    async def test_decrements_when_sufficient(self, db, session_factory, mug):
        assert await ProductRepository.decrement_stock(db, mug.id, 5) is True
        await db.commit()
        assert (await ProductRepository.get_product_fresh(db, mug.id)).stock_quantity == 0

    async def test_refuses_to_go_negative(self, db, mug):
        assert await ProductRepository.decrement_stock(db, mug.id, 6) is False
        await db.commit()
        assert (await ProductRepository.get_product_fresh(db, mug.id)).stock_quantity == 5


class TestCategories:

    async def test_create_and_lookup(self, db):
        created = await CategoryService.create_category(db, CategoryCreate(name="Garden"))
        assert (await CategoryService.get_category_by_name(db, "garden")).id == created.id
        assert [c.name for c in await CategoryService.list_categories(db)] == ["Garden"]

    async def test_duplicate_name_conflicts(self, db, category):
        with pytest.raises(ConflictError) as exc:
            await CategoryService.create_category(db, CategoryCreate(name="KITCHEN"))
        assert exc.value.detail == "Category with name 'KITCHEN' already exists."

    async def test_rename_onto_existing_name_conflicts(self, db, category):
        other = await CategoryService.create_category(db, CategoryCreate(name="Garden"))
        with pytest.raises(ConflictError):
            await CategoryService.update_category(db, other.id, CategoryCreate(name="kitchen"))

        renamed = await CategoryService.update_category(db, category.id, CategoryCreate(name="Kitchenware"))
        assert renamed.name == "Kitchenware"

    async def test_delete_with_products_is_rejected(self, db, session_factory, category):
        await make_product(session_factory, "Pan", "25.00", 3, category_id=category.id)
        with pytest.raises(BadRequestError):
            await CategoryService.delete_category(db, category.id)

    async def test_delete_empty_category(self, db, category):
        await CategoryService.delete_category(db, category.id)
        with pytest.raises(NotFoundError):
            await CategoryService.get_category_by_id(db, category.id)
