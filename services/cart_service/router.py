from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security import CurrentUser, get_current_user

from .schemas import AddToCartRequest, CartResponse
from .service import CartService

router = APIRouter(prefix="/api/cart", tags=["Cart"])


@router.get("", response_model=CartResponse)
async def get_cart(user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await CartService.get_cart(db, user.id)


@router.post("/add", response_model=CartResponse)
async def add_product_to_cart(
    payload: AddToCartRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CartService.add_product(db, user.id, payload)


@router.put("/update-quantity/{product_id}", response_model=CartResponse)
async def update_product_quantity(
    product_id: int,
    quantity: int = Query(...),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CartService.update_quantity(db, user.id, product_id, quantity)


@router.delete("/remove/{product_id}", response_model=CartResponse)
async def remove_product_from_cart(
    product_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CartService.remove_product(db, user.id, product_id)


@router.delete("/clear", response_model=CartResponse)
async def clear_cart(user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await CartService.clear_cart(db, user.id)
