from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security import ORDER_RATE_LIMIT, CurrentUser, get_current_user, limiter, require_admin

from .models import OrderStatus
from .schemas import OrderResponse, PlaceOrderRequest
from .service import OrderWorkflow

router = APIRouter(prefix="/api/orders", tags=["Orders"])


def get_order_workflow(request: Request) -> OrderWorkflow:
    return request.app.state.order_workflow


@router.post(
    "/place",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order from the current cart",
)
@limiter.limit(ORDER_RATE_LIMIT)
async def place_order(
    request: Request,
    payload: PlaceOrderRequest,
    user: CurrentUser = Depends(get_current_user),
    workflow: OrderWorkflow = Depends(get_order_workflow),
):
    return await workflow.place_order(user.id, payload)


@router.get("", response_model=list[OrderResponse], summary="List the current user's orders")
async def get_my_orders(user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await OrderWorkflow.get_user_orders(db, user.id)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await OrderWorkflow.get_order_by_id(db, order_id, caller=user)


@router.put("/{order_id}/status", response_model=OrderResponse, summary="Overwrite an order's status (admin)")
async def update_order_status(
    order_id: int,
    new_status: Optional[OrderStatus] = Query(default=None, alias="status"),
    _: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await OrderWorkflow.update_order_status(db, order_id, new_status)
