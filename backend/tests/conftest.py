"""
Test Configuration: Fixtures for async DB, dispatcher, test client, and seed data.

Each test gets its own in-memory SQLite database (StaticPool keeps the
single connection alive across sessions) with the schema created fresh.

Seed store (dates relative to now):
  customers  Acme (platinum, 50,000)  Globex (gold, 25,000)  Initech (silver, 13,000)
  orders     o1 Acme   -10d  delivered  50,000  (P1×10 + P2×50)  rep Dana   West
             o2 Globex -65d  shipped    25,000  (P1×10)          rep Sam    East
             o3 Initech -95d delivered  13,000  (P3×26)          rep Dana   West
  products   P1 Hardware 2500/1500   P2 Software 500/100   P3 Services 500/300
  inventory  P1 Main 5/5   P2 Main 9/5   P3 East 11/5
"""

from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401  (register tables on Base.metadata)
from api.main import create_app
from core.config import Settings
from db.models import Customer, InventoryRecord, Order, OrderItem, Product, SalesRep
from db.session import Base
from dispatch.context import build_context
from dispatch.dispatcher import Dispatcher

TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_JWT_SECRET = "test-secret-not-for-production"


@pytest.fixture
def test_settings():
    return Settings(
        app_env="test",
        debug=False,
        database_url=TEST_DATABASE_URL,
        jwt_secret=TEST_JWT_SECRET,
        rate_limit_max_requests=100,
        rate_limit_window_seconds=900,
    )


@pytest.fixture
async def test_engine():
    """Fresh in-memory database with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def context(test_settings, test_engine):
    return build_context(test_settings, engine=test_engine)


@pytest.fixture
async def test_db(context):
    async with context.session_factory() as session:
        yield session


@pytest.fixture
def dispatcher(context):
    return Dispatcher(context)


@pytest.fixture
def auth_token(context):
    return context.tokens.issue({"sub": "analyst@example.com", "role": "analyst"})


@pytest.fixture
async def client(context):
    app = create_app(context=context)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def now():
    return datetime.utcnow()


@pytest.fixture
async def seeded_db(context, now):
    """Seed the store described in the module docstring; returns the ids."""
    async with context.session_factory() as session:
        acme = Customer(
            id="C1",
            name="Acme Corp",
            email="buyer@acme.example",
            company="Acme",
            industry="Technology",
            location="Austin, TX",
            customer_tier="platinum",
            acquisition_date=now - timedelta(days=400),
            total_spent=50000.0,
            last_order_date=now - timedelta(days=10),
            status="active",
        )
        globex = Customer(
            id="C2",
            name="Globex",
            email="orders@globex.example",
            company="Globex",
            industry="Manufacturing",
            location="Chicago, IL",
            customer_tier="gold",
            acquisition_date=now - timedelta(days=200),
            total_spent=25000.0,
            last_order_date=now - timedelta(days=65),
            status="active",
        )
        initech = Customer(
            id="C3",
            name="Initech",
            email="it@initech.example",
            company="Initech",
            industry="Technology",
            location="Austin, TX",
            customer_tier="silver",
            acquisition_date=now - timedelta(days=120),
            total_spent=13000.0,
            last_order_date=now - timedelta(days=95),
            status="active",
        )
        session.add_all([acme, globex, initech])

        session.add_all(
            [
                Product(id="P1", name="Server Rack", category="Hardware", price=2500.0, cost=1500.0, sku="HW-001"),
                Product(id="P2", name="Analytics Suite", category="Software", price=500.0, cost=100.0, sku="SW-001"),
                Product(id="P3", name="Consulting Day", category="Services", price=500.0, cost=300.0, sku="SV-001"),
                SalesRep(id="R1", name="Dana Reyes", email="dana@example.com", region="West"),
                SalesRep(id="R2", name="Sam Okafor", email="sam@example.com", region="East"),
            ]
        )
        await session.flush()

        session.add_all(
            [
                Order(
                    id="O1",
                    customer_id="C1",
                    order_date=now - timedelta(days=10),
                    status="delivered",
                    total_amount=50000.0,
                    payment_method="credit_card",
                    sales_rep_id="R1",
                    region="West",
                ),
                Order(
                    id="O2",
                    customer_id="C2",
                    order_date=now - timedelta(days=65),
                    status="shipped",
                    total_amount=25000.0,
                    payment_method="invoice",
                    sales_rep_id="R2",
                    region="East",
                ),
                Order(
                    id="O3",
                    customer_id="C3",
                    order_date=now - timedelta(days=95),
                    status="delivered",
                    total_amount=13000.0,
                    payment_method="invoice",
                    sales_rep_id="R1",
                    region="West",
                ),
            ]
        )
        await session.flush()

        session.add_all(
            [
                OrderItem(order_id="O1", product_id="P1", quantity=10, unit_price=2500.0, total_price=25000.0),
                OrderItem(order_id="O1", product_id="P2", quantity=50, unit_price=500.0, total_price=25000.0),
                OrderItem(order_id="O2", product_id="P1", quantity=10, unit_price=2500.0, total_price=25000.0),
                OrderItem(order_id="O3", product_id="P3", quantity=26, unit_price=500.0, total_price=13000.0),
                InventoryRecord(product_id="P1", warehouse="Main", quantity=5, reorder_level=5),
                InventoryRecord(product_id="P2", warehouse="Main", quantity=9, reorder_level=5),
                InventoryRecord(product_id="P3", warehouse="East", quantity=11, reorder_level=5),
            ]
        )
        await session.commit()

    return {
        "customers": ["C1", "C2", "C3"],
        "products": ["P1", "P2", "P3"],
        "reps": ["R1", "R2"],
        "orders": ["O1", "O2", "O3"],
    }
