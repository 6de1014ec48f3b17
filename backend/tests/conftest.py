"""
Centralized Test Configuration.
"""

import pytest
from datetime import date
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base, atomic
from backend.app.core.dependencies import TenantContext
from backend.app.core.jwt import create_access_token
from backend.app.domain.ledger.recorder import TransactionRecorder
from backend.app.domain.payment_plan.schedule_service import BookingTerms, PaymentPlanService
from backend.app.models.ledger_enums import InstallmentFrequency, PaymentType
from backend.app.models.supplier import Supplier

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TENANT_ID = 1
OTHER_TENANT_ID = 2

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Point the app's session dependency at the in-memory database."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides = {}

@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session

@pytest.fixture
def ctx():
    return TenantContext(tenant_id=TENANT_ID, user_id=7, username="agent@agency.test")

@pytest.fixture
def other_ctx():
    return TenantContext(tenant_id=OTHER_TENANT_ID, user_id=8, username="agent@other.test")

@pytest.fixture
def auth_headers():
    token = create_access_token(data={"sub": "agent@agency.test", "user_id": 7, "tenant_id": TENANT_ID})
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture
async def supplier_id(db_session):
    """Id of a hotel supplier of the test tenant."""
    row = Supplier(tenant_id=TENANT_ID, name="Hotel Caribe", phone="555-0100", service_type="HOTEL")
    db_session.add(row)
    await db_session.commit()
    return row.id

@pytest.fixture
def make_account(db_session, ctx):
    """Open an account for the test tenant and return its id."""
    async def _make(label="Main", initial_balance="0"):
        async with atomic(db_session):
            account = await TransactionRecorder.open_account(
                db_session, ctx, label, initial_balance=initial_balance
            )
        return account.id

    return _make

@pytest.fixture
def make_credit_booking(db_session, ctx):
    """Create a CREDIT booking and return (booking_id, [installment ids in sequence order])."""
    async def _make(total="300", count=3, down_payment="0", **overrides):
        terms = BookingTerms(
            total_price=Decimal(total),
            payment_type=PaymentType.CREDIT,
            down_payment=Decimal(down_payment),
            installment_count=count,
            installment_frequency=InstallmentFrequency.SEMIMONTHLY,
            payment_start_date=date(2025, 3, 10),
            **overrides,
        )
        async with atomic(db_session):
            booking = await PaymentPlanService.create_booking(db_session, ctx, terms)
            booking_id = booking.id
        installments = await PaymentPlanService.list_installments(db_session, ctx, booking_id)
        return booking_id, [inst.id for inst in installments]

    return _make

@pytest.fixture
def session_factory():
    """Factory for extra sessions, one per simulated agent."""
    return TestingSessionLocal
