"""Shared fixtures: a throwaway SQLite database per test and seeded data."""
import os

# Configuration is read at import time, so it must be in place first
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["INTERNAL_API_KEY"] = "test-internal-key"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["OTEL_TRACES_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from shared.config.database import Base
from shared.security import ROLE_ADMIN, ROLE_USER, create_access_token

from services.auth_service.models import User
from services.auth_service.repository import RoleRepository
from services.auth_service.service import AuthService, seed_roles_and_admin
from services.cart_service.models import Cart, CartItem
from services.catalog_service.models import Category, Product
from services.order_service import models as order_models  # noqa: F401
from services.order_service.schemas import PlaceOrderRequest
from services.order_service.service import OrderWorkflow
from services.order_service.unit_of_work import UnitOfWork
from services.payment_service import models as payment_models  # noqa: F401
from services.payment_service.gateway import SimulatedPaymentGateway
from services.payment_service.service import PaymentService
from services.notification_service import models as notification_models  # noqa: F401
from services.notification_service.publisher import EmailTopicPublisher

CHECKOUT = PlaceOrderRequest(
    street="1 Main St",
    city="Springfield",
    state="IL",
    postal_code="62701",
    country="US",
    payment_method="CARD",
    payment_method_token="pm_card_visa",
)


@pytest.fixture
async def session_factory(tmp_path):
    # On-disk so concurrent sessions get separate connections
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shop.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as db:
        await seed_roles_and_admin(db)
    yield factory
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def make_user(session_factory, username: str, admin: bool = False) -> User:
    async with session_factory() as db:
        role = await RoleRepository.get_by_name(db, ROLE_ADMIN if admin else ROLE_USER)
        user = User(
            username=username,
            email=f"{username}@example.com",
            hashed_password=AuthService._hash_password("secret"),
            first_name=username.capitalize(),
            roles=[role],
        )
        db.add(user)
        await db.commit()
        return user


async def make_product(session_factory, name: str, price: str, stock: int, category_id=None) -> Product:
    async with session_factory() as db:
        product = Product(name=name, price=Decimal(price), stock_quantity=stock, category_id=category_id)
        db.add(product)
        await db.commit()
        return product


async def fill_cart(session_factory, user_id: int, lines) -> Cart:
    """lines: iterable of (product, quantity[, price_at_addition])."""
    async with session_factory() as db:
        cart = Cart(user_id=user_id, items=[])
        db.add(cart)
        await db.flush()
        for line in lines:
            product, quantity = line[0], line[1]
            price = Decimal(line[2]) if len(line) > 2 else product.price
            db.add(CartItem(cart_id=cart.id, product_id=product.id, quantity=quantity, price_at_addition=price))
        await db.commit()
        return cart


async def get_stock(session_factory, product_id: int) -> int:
    async with session_factory() as db:
        product = await db.get(Product, product_id)
        return product.stock_quantity


def bearer(user: User, admin: bool = False) -> dict:
    roles = [ROLE_ADMIN] if admin else [ROLE_USER]
    token = create_access_token({"sub": str(user.id), "username": user.username, "roles": roles})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def alice(session_factory):
    return await make_user(session_factory, "alice")


@pytest.fixture
async def bob(session_factory):
    return await make_user(session_factory, "bob")


@pytest.fixture
async def mug(session_factory):
    return await make_product(session_factory, "Mug", "10.00", 5)


@pytest.fixture
async def category(session_factory):
    async with session_factory() as db:
        category = Category(name="Kitchen", description="Things for the kitchen")
        db.add(category)
        await db.commit()
        return category


class RecordingDispatcher:
    """Stands in for NotificationDispatcher and remembers what was enqueued."""

    def __init__(self):
        self.enqueued = []

    def enqueue(self, confirmation):
        self.enqueued.append(confirmation)


class RecordingPublisher(EmailTopicPublisher):
    """Keeps every published email so tests can inspect it."""

    def __init__(self):
        self.published = []

    async def publish(self, message):
        self.published.append(message)


class RecordingLogger:
    """Stands in for a module-level structlog logger."""

    def __init__(self):
        self.events = []

    def info(self, event, **kw):
        self.events.append(("info", event, kw))

    def warning(self, event, **kw):
        self.events.append(("warning", event, kw))

    def error(self, event, **kw):
        self.events.append(("error", event, kw))


@pytest.fixture
def gateway():
    return SimulatedPaymentGateway("succeeded")


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def workflow(session_factory, gateway, dispatcher):
    return OrderWorkflow(
        UnitOfWork(session_factory, max_attempts=10, retry_backoff=0.05),
        PaymentService(gateway, currency="usd", timeout=2.0),
        dispatcher,
    )


@pytest.fixture
async def app_client(session_factory, workflow):
    """ASGI client over the real app, wired to the test database."""
    from httpx import ASGITransport, AsyncClient

    from main import app
    from shared.config.database import get_db

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.order_workflow = workflow
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
