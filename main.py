from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from shared.config.database import AsyncSessionLocal, Base, engine
from shared.observability import setup_observability
from shared.security import limiter

# IMPORTANT: import models so they register with Base
from services.auth_service import models as auth_models  # noqa: F401
from services.catalog_service import models as catalog_models  # noqa: F401
from services.cart_service import models as cart_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401
from services.payment_service import models as payment_models  # noqa: F401
from services.notification_service import models as notification_models  # noqa: F401

from services.admin_service.router import router as admin_router
from services.auth_service.router import router as auth_router
from services.auth_service.service import seed_roles_and_admin
from services.cart_service.router import router as cart_router
from services.catalog_service.router import category_router, product_router
from services.notification_service.channels import InMemoryNotificationChannel, build_notification_channel
from services.notification_service.consumer import OrderConfirmationConsumer
from services.notification_service.dispatcher import NotificationDispatcher
from services.notification_service.publisher import build_email_publisher
from services.notification_service.repository import DeadLetterStore
from services.notification_service.router import admin_router as dead_letter_router
from services.order_service.router import router as order_router
from services.order_service.service import OrderWorkflow
from services.order_service.unit_of_work import UnitOfWork
from services.payment_service.gateway import build_payment_gateway
from services.payment_service.service import PaymentService

app = FastAPI(title="ShopSphere API", version="1.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(app, "shopsphere_api")

# --- SECURITY SETUP ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(auth_router)
app.include_router(product_router)
app.include_router(category_router)
app.include_router(cart_router)
app.include_router(order_router)
app.include_router(admin_router)
app.include_router(dead_letter_router)


@app.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "shopsphere", "status": "running"}


@app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        await seed_roles_and_admin(db)

    dead_letters = DeadLetterStore(AsyncSessionLocal)
    channel = build_notification_channel()
    if isinstance(channel, InMemoryNotificationChannel):
        # No separate consumer deployed: consume in-process
        consumer = OrderConfirmationConsumer(build_email_publisher(), dead_letters)
        channel.start(consumer.handle)

    app.state.dispatcher = NotificationDispatcher(channel, dead_letters)
    app.state.order_workflow = OrderWorkflow(
        UnitOfWork(AsyncSessionLocal),
        PaymentService(build_payment_gateway()),
        app.state.dispatcher,
    )


@app.on_event("shutdown")
async def shutdown_event():
    dispatcher = app.state.dispatcher
    await dispatcher.drain()
    await dispatcher.channel.close()
    await engine.dispose()
