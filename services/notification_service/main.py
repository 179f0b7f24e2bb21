"""
Standalone order confirmation consumer.

Deploy with NOTIFICATION_CHANNEL=http on the API side pointing
NOTIFICATION_QUEUE_URL at this app's /order-confirmations endpoint.
"""
from fastapi import FastAPI

from shared.config.database import AsyncSessionLocal, Base, engine
from shared.observability import setup_observability

from .consumer import OrderConfirmationConsumer
from .models import DeadLetter
from .publisher import build_email_publisher
from .repository import DeadLetterStore
from .router import consumer_router

notification_app = FastAPI(title="Notification Service", version="1.0.0")

setup_observability(notification_app, "notification_service")

notification_app.include_router(consumer_router)


@notification_app.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "notification", "status": "running"}


@notification_app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=[DeadLetter.__table__])
    notification_app.state.confirmation_consumer = OrderConfirmationConsumer(
        build_email_publisher(), DeadLetterStore(AsyncSessionLocal)
    )
