from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security import CurrentUser, require_admin, verify_internal_api_key

from .consumer import OrderConfirmationConsumer
from .repository import DeadLetterRepository
from .schemas import DeadLetterResponse

# Service-to-service endpoint: only callers holding the internal key
consumer_router = APIRouter(dependencies=[Depends(verify_internal_api_key)], tags=["Notifications"])

admin_router = APIRouter(prefix="/api/admin/notifications", tags=["Admin"])


def get_consumer(request: Request) -> OrderConfirmationConsumer:
    return request.app.state.confirmation_consumer


@consumer_router.post("/order-confirmations", status_code=status.HTTP_202_ACCEPTED)
async def receive_order_confirmation(
    request: Request,
    consumer: OrderConfirmationConsumer = Depends(get_consumer),
):
    published = await consumer.handle(await request.body())
    # Failures are dead-lettered here; the channel must not redeliver
    return {"status": "published" if published else "dead_lettered"}


@admin_router.get("/dead-letters", response_model=list[DeadLetterResponse])
async def list_dead_letters(
    _: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await DeadLetterRepository.list_all(db)
