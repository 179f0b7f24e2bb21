import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.auth_service.repository import UserRepository
from services.catalog_service.repository import CategoryRepository, ProductRepository
from services.order_service.models import OrderStatus
from services.order_service.repository import OrderRepository

from .schemas import AdminDashboardStats, AdminOrderSummary

logger = structlog.get_logger(__name__)

LOW_STOCK_THRESHOLD = 10
RECENT_ORDERS_LIMIT = 10


class AdminService:

    @staticmethod
    async def get_dashboard_stats(db: AsyncSession) -> AdminDashboardStats:
        recent = await OrderRepository.get_recent_orders(db, RECENT_ORDERS_LIMIT)
        stats = AdminDashboardStats(
            total_orders=await OrderRepository.count(db),
            total_users=await UserRepository.count(db),
            total_products=await ProductRepository.count(db),
            total_categories=await CategoryRepository.count(db),
            # Only delivered orders count as realised revenue
            total_revenue=await OrderRepository.sum_total_by_status(db, OrderStatus.DELIVERED),
            pending_orders=await OrderRepository.count_by_status(db, OrderStatus.PENDING),
            low_stock_products=await ProductRepository.count_low_stock(db, LOW_STOCK_THRESHOLD),
            recent_orders=[
                AdminOrderSummary(
                    id=order.id,
                    customer_name=order.user.full_name,
                    order_date=order.order_date,
                    total_amount=order.total_amount,
                    status=order.status.value,
                    item_count=len(order.items),
                )
                for order in recent
            ],
        )
        logger.info("dashboard_stats_computed", total_orders=stats.total_orders)
        return stats
