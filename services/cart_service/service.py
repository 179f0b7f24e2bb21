from decimal import Decimal

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from services.catalog_service.service import ProductService
from shared.errors import NotFoundError
from shared.observability import ecomm_carts_created_total

from .models import Cart, CartItem
from .repository import CartRepository
from .schemas import AddToCartRequest, CartItemResponse, CartResponse

logger = structlog.get_logger(__name__)


def to_cart_response(cart: Cart) -> CartResponse:
    items = [
        CartItemResponse(
            id=item.id,
            product_id=item.product_id,
            product_name=item.product.name,
            product_image_url=item.product.image_url,
            quantity=item.quantity,
            price_at_addition=item.price_at_addition,
            item_total=item.price_at_addition * item.quantity,
            added_at=item.added_at,
        )
        for item in cart.items
    ]
    return CartResponse(
        id=cart.id,
        user_id=cart.user_id,
        items=items,
        total_amount=sum((i.item_total for i in items), Decimal("0")),
        created_at=cart.created_at,
        updated_at=cart.updated_at,
    )


class CartService:

    @staticmethod
    async def get_or_create_cart(db: AsyncSession, user_id: int) -> Cart:
        cart = await CartRepository.get_by_user(db, user_id)
        if cart is not None:
            return cart
        try:
            await CartRepository.create(db, user_id)
            await db.commit()
        except IntegrityError:
            # Another request created it first; one cart per user
            await db.rollback()
        else:
            ecomm_carts_created_total.inc()
            logger.info("cart_created", user_id=user_id)
        return await CartRepository.get_by_user(db, user_id)

    @staticmethod
    async def _reload(db: AsyncSession, user_id: int) -> CartResponse:
        return to_cart_response(await CartRepository.get_by_user(db, user_id))

    @staticmethod
    async def get_cart(db: AsyncSession, user_id: int) -> CartResponse:
        return to_cart_response(await CartService.get_or_create_cart(db, user_id))

    @staticmethod
    async def add_product(db: AsyncSession, user_id: int, request: AddToCartRequest) -> CartResponse:
        cart = await CartService.get_or_create_cart(db, user_id)
        product = await ProductService.get_product_entity(db, request.product_id)

        existing = await CartRepository.get_item(db, cart.id, product.id)
        if existing:
            existing.quantity += request.quantity
        else:
            await CartRepository.add_item(
                db,
                CartItem(
                    cart_id=cart.id,
                    product_id=product.id,
                    quantity=request.quantity,
                    price_at_addition=product.price,
                ),
            )
        await CartRepository.touch(db, cart.id)
        await db.commit()
        logger.info("cart_item_added", user_id=user_id, product_id=product.id, quantity=request.quantity)
        return await CartService._reload(db, user_id)

    @staticmethod
    async def update_quantity(db: AsyncSession, user_id: int, product_id: int, quantity: int) -> CartResponse:
        cart = await CartService.get_or_create_cart(db, user_id)
        await ProductService.get_product_entity(db, product_id)

        item = await CartRepository.get_item(db, cart.id, product_id)
        if not item:
            raise NotFoundError("Product not found in cart.")

        if quantity <= 0:
            await CartRepository.delete_item(db, item)
        else:
            item.quantity = quantity
        await CartRepository.touch(db, cart.id)
        await db.commit()
        return await CartService._reload(db, user_id)

    @staticmethod
    async def remove_product(db: AsyncSession, user_id: int, product_id: int) -> CartResponse:
        cart = await CartService.get_or_create_cart(db, user_id)
        await ProductService.get_product_entity(db, product_id)

        item = await CartRepository.get_item(db, cart.id, product_id)
        if not item:
            raise NotFoundError("Product not found in cart.")

        await CartRepository.delete_item(db, item)
        await CartRepository.touch(db, cart.id)
        await db.commit()
        return await CartService._reload(db, user_id)

    @staticmethod
    async def clear_cart(db: AsyncSession, user_id: int) -> CartResponse:
        cart = await CartService.get_or_create_cart(db, user_id)
        removed = await CartRepository.clear_items(db, cart.id)
        await CartRepository.touch(db, cart.id)
        await db.commit()
        logger.info("cart_cleared", user_id=user_id, removed_items=removed)
        return await CartService._reload(db, user_id)
