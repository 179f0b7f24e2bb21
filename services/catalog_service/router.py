from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security import require_admin

from .schemas import CategoryCreate, CategoryResponse, ProductCreate, ProductResponse
from .service import CategoryService, ProductService

product_router = APIRouter(prefix="/api/products", tags=["Products"])
category_router = APIRouter(prefix="/api/categories", tags=["Categories"])


@product_router.get("", response_model=list[ProductResponse])
async def list_products(
    query: Optional[str] = Query(default=None, description="Case-insensitive name filter"),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService.list_products(db, query)


@product_router.get("/search/name", response_model=ProductResponse)
async def get_product_by_name(name: str, db: AsyncSession = Depends(get_db)):
    return await ProductService.get_product_by_name(db, name)


@product_router.get("/search/price-range", response_model=list[ProductResponse])
async def get_products_in_price_range(
    min_price: Decimal = Query(alias="minPrice"),
    max_price: Decimal = Query(alias="maxPrice"),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService.get_products_in_price_range(db, min_price, max_price)


@product_router.get("/search/low-stock", response_model=list[ProductResponse])
async def get_low_stock_products(threshold: int, db: AsyncSession = Depends(get_db)):
    return await ProductService.get_low_stock_products(db, threshold)


@product_router.get("/category/{category_id}", response_model=list[ProductResponse])
async def get_products_by_category(category_id: int, db: AsyncSession = Depends(get_db)):
    return await ProductService.get_products_by_category(db, category_id)


@product_router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    return await ProductService.get_product_by_id(db, product_id)


@product_router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_product(product: ProductCreate, db: AsyncSession = Depends(get_db)):
    return await ProductService.create_product(db, product)


@product_router.put("/{product_id}", response_model=ProductResponse, dependencies=[Depends(require_admin)])
async def update_product(product_id: int, product: ProductCreate, db: AsyncSession = Depends(get_db)):
    return await ProductService.update_product(db, product_id, product)


@product_router.delete(
    "/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def delete_product(product_id: int, db: AsyncSession = Depends(get_db)):
    await ProductService.delete_product(db, product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@category_router.get("", response_model=list[CategoryResponse])
async def list_categories(db: AsyncSession = Depends(get_db)):
    return await CategoryService.list_categories(db)


@category_router.get("/search/name", response_model=CategoryResponse)
async def get_category_by_name(name: str, db: AsyncSession = Depends(get_db)):
    return await CategoryService.get_category_by_name(db, name)


@category_router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(category_id: int, db: AsyncSession = Depends(get_db)):
    return await CategoryService.get_category_by_id(db, category_id)


@category_router.post(
    "",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_category(category: CategoryCreate, db: AsyncSession = Depends(get_db)):
    return await CategoryService.create_category(db, category)


@category_router.put("/{category_id}", response_model=CategoryResponse, dependencies=[Depends(require_admin)])
async def update_category(category_id: int, category: CategoryCreate, db: AsyncSession = Depends(get_db)):
    return await CategoryService.update_category(db, category_id, category)


@category_router.delete(
    "/{category_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def delete_category(category_id: int, db: AsyncSession = Depends(get_db)):
    await CategoryService.delete_category(db, category_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
