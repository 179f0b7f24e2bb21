from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from services.auth_service.schemas import UserResponse
from services.auth_service.service import AuthService
from services.order_service.schemas import OrderResponse
from services.order_service.service import OrderWorkflow
from shared.config.database import get_db
from shared.security import require_admin

from .schemas import AdminDashboardStats
from .service import AdminService

# Every admin endpoint requires ROLE_ADMIN
router = APIRouter(prefix="/api/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


@router.get("/dashboard/stats", response_model=AdminDashboardStats)
async def get_dashboard_stats(db: AsyncSession = Depends(get_db)):
    return await AdminService.get_dashboard_stats(db)


@router.get("/users", response_model=list[UserResponse])
async def list_users(db: AsyncSession = Depends(get_db)):
    return [UserResponse.model_validate(u) for u in await AuthService.list_users(db)]


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return UserResponse.model_validate(await AuthService.get_user_by_id(db, user_id))


@router.get("/orders", response_model=list[OrderResponse])
async def list_orders(db: AsyncSession = Depends(get_db)):
    return await OrderWorkflow.get_all_orders(db)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(order_id: int, db: AsyncSession = Depends(get_db)):
    return await OrderWorkflow.get_order_by_id(db, order_id)
