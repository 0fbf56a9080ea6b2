"""
Pytest configuration and fixtures.

Every test gets a fresh in-memory SQLite database; the API client runs the
FastAPI app in-process with ``get_db`` pointed at that database.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.setdefault("ADMIN_NOTIFICATION_EMAIL", "ops@example.com")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import uuid
from decimal import Decimal
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from vendorflow.core.security import Actor, ADMIN, VENDOR, create_access_token
from vendorflow.database import Base, build_engine, get_db
from vendorflow.models.assignment import VendorAssignment
from vendorflow.models.store import Store
from vendorflow.models.vendor import Vendor, VendorStatus
from vendorflow.services.order_service import OrderService
import vendorflow.models  # noqa: F401


@pytest_asyncio.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[httpx.AsyncClient, None]:
    from vendorflow.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ==================== Actors ====================

@pytest.fixture
def admin() -> Actor:
    return Actor(id=uuid.uuid4(), user_type=ADMIN)


def vendor_actor(vendor: Vendor) -> Actor:
    return Actor(id=uuid.uuid4(), user_type=VENDOR, vendor_id=vendor.id)


def auth_headers(actor: Actor) -> dict:
    token = create_access_token(actor.id, user_type=actor.user_type, vendor_id=actor.vendor_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin) -> dict:
    return auth_headers(admin)


# ==================== Factories ====================

@pytest_asyncio.fixture
async def store(db_session) -> Store:
    store = Store(name="Test Shop", store_type="shopify", store_url="https://test-shop.example.com")
    db_session.add(store)
    await db_session.commit()
    return store


async def make_vendor(
    db: AsyncSession,
    name: str = "Acme Print",
    status: str = VendorStatus.APPROVED.value,
    commission_rate: Decimal = Decimal("10.00"),
) -> Vendor:
    vendor = Vendor(
        company_name=name,
        email=f"{name.lower().replace(' ', '.')}.{uuid.uuid4().hex[:6]}@vendors.example.com",
        status=status,
        commission_rate=commission_rate,
    )
    db.add(vendor)
    await db.commit()
    return vendor


async def make_order(db: AsyncSession, store: Store, items=None, **overrides):
    """Ingest an order; ``items`` is a list of (name, sku, quantity, unit_price)."""
    items = items or [("T-Shirt", "TS-1", 10, "10.00"), ("Mug", "MUG-1", 5, "20.00")]
    payload = {
        "external_order_id": overrides.pop("external_order_id", f"ext-{uuid.uuid4().hex[:8]}"),
        "order_number": overrides.pop("order_number", "1001"),
        "customer_email": "customer@example.com",
        "customer_name": "Casey Customer",
        "items": [
            {
                "external_item_id": f"line-{index}",
                "product_name": name,
                "sku": sku,
                "quantity": quantity,
                "unit_price": unit_price,
            }
            for index, (name, sku, quantity, unit_price) in enumerate(items)
        ],
        **overrides,
    }
    return await OrderService(db).ingest_order(store.id, payload)


@pytest_asyncio.fixture
async def vendor(db_session) -> Vendor:
    return await make_vendor(db_session)


@pytest_asyncio.fixture
async def other_vendor(db_session) -> Vendor:
    return await make_vendor(db_session, name="Beta Goods")


@pytest_asyncio.fixture
async def order(db_session, store):
    return await make_order(db_session, store)


def item_by_sku(order, sku: str):
    return next(item for item in order.items if item.sku == sku)


async def move_to(service, assignment: VendorAssignment, *statuses: str, actor=None) -> VendorAssignment:
    """Walk an assignment through several statuses in order."""
    for status in statuses:
        assignment = await service.update_assignment_status(assignment.id, status, actor=actor)
    return assignment
