"""
EduPortal Billing - Test Configuration

Pytest fixtures and configuration.
"""

import os

# Settings are read at import time; configure before importing the app
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-jwt-signing")
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_x")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test_key_secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "test_webhook_secret")
os.environ.setdefault("MAIL_PROVIDER", "mock")

from datetime import timedelta
from typing import AsyncGenerator, Dict, Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.config.pricing_config import BillingCycle
from app.database import Base, get_async_session
from app.models.base import utcnow
from app.models.billing import Order, Payment, Subscription
from app.models.billing_enums import OrderStatus, PaymentStatus, SubscriptionStatus
from app.models.user import User, UserRole
from app.services.email_service import EmailService
from app.services.payment_gateway import RazorpayProvider, get_payment_provider
from app.services.pricing_catalog import (
    InMemoryCatalogStorage,
    PriceCatalog,
    get_price_catalog,
)
from app.utils.security import create_access_token, get_password_hash
from main import app

from fixtures.razorpay_mock import MockRazorpayServer


TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    yield engine
    
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    session_factory = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(autouse=True)
def clear_mock_emails():
    EmailService.sent_messages.clear()
    yield
    EmailService.sent_messages.clear()


@pytest.fixture
def catalog() -> PriceCatalog:
    """Catalog with default prices and in-memory storage."""
    return PriceCatalog(storage=InMemoryCatalogStorage())


@pytest.fixture
def razorpay_server() -> MockRazorpayServer:
    return MockRazorpayServer(
        key_id="rzp_test_x",
        key_secret="test_key_secret",
        webhook_secret="test_webhook_secret",
    )


@pytest.fixture
def razorpay_provider(razorpay_server: MockRazorpayServer) -> RazorpayProvider:
    """Provider pointed at the mock server's base URL."""
    return RazorpayProvider(
        key_id=razorpay_server.key_id,
        key_secret=razorpay_server.key_secret,
        base_url=MockRazorpayServer.BASE_URL,
        timeout=5.0,
    )


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    catalog: PriceCatalog,
    razorpay_provider: RazorpayProvider,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database, catalog and provider overrides."""
    
    async def override_get_session():
        yield db_session
    
    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_price_catalog] = lambda: catalog
    app.dependency_overrides[get_payment_provider] = lambda: razorpay_provider
    
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    
    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a regular user with no subscription."""
    user = User(
        id=uuid4(),
        name="Asha Verma",
        email="asha@example.com",
        hashed_password=get_password_hash("TestPassword123!"),
        role=UserRole.USER,
        is_active=True,
        subscription_status=SubscriptionStatus.INACTIVE,
        purchased_portals=[],
        enabled_features=[],
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    user = User(
        id=uuid4(),
        name="Ravi Menon",
        email="ravi@example.com",
        hashed_password=get_password_hash("TestPassword123!"),
        role=UserRole.USER,
        is_active=True,
        subscription_status=SubscriptionStatus.INACTIVE,
        purchased_portals=[],
        enabled_features=[],
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    user = User(
        id=uuid4(),
        name="Administrator",
        email="admin@example.com",
        hashed_password=get_password_hash("AdminPassword123!"),
        role=UserRole.ADMIN,
        is_active=True,
        subscription_status=SubscriptionStatus.INACTIVE,
        purchased_portals=[],
        enabled_features=[],
    )
    db_session.add(user)
    await db_session.commit()
    return user


def make_auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token({"sub": str(user.id), "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(test_user: User) -> Dict[str, str]:
    return make_auth_headers(test_user)


@pytest.fixture
def admin_headers(admin_user: User) -> Dict[str, str]:
    return make_auth_headers(admin_user)


async def create_order_record(
    db: AsyncSession,
    user: User,
    provider_order_id: str = "order_test0001",
    portals=("admin", "teacher"),
    features=("fee_management",),
    amount: int = 2880,
    billing_cycle: BillingCycle = BillingCycle.MONTHLY,
    status: OrderStatus = OrderStatus.CREATED,
) -> Order:
    """Insert an order as if checkout had created it."""
    order = Order(
        user_id=user.id,
        provider_order_id=provider_order_id,
        receipt=f"rcpt_test_{provider_order_id}",
        amount=amount,
        amount_in_smallest_unit=amount * 100,
        currency="INR",
        selected_portals=list(portals),
        selected_features=list(features),
        billing_cycle=billing_cycle,
        status=status,
        expires_at=utcnow() + timedelta(minutes=30),
    )
    db.add(order)
    await db.commit()
    return order


async def create_subscription_record(
    db: AsyncSession,
    user: User,
    order: Order,
    start_offset_days: int = 0,
    duration_days: int = 30,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
) -> Subscription:
    """Insert a subscription and point the user's snapshot at it."""
    start = utcnow() + timedelta(days=start_offset_days)
    subscription = Subscription(
        user_id=user.id,
        order_id=order.id,
        portals=list(order.selected_portals),
        features=list(order.selected_features),
        amount=order.amount,
        billing_cycle=order.billing_cycle,
        start_date=start,
        end_date=start + timedelta(days=duration_days),
        status=status,
        auto_renew=True,
    )
    db.add(subscription)
    await db.flush()
    
    user.subscription_status = status
    user.current_subscription_id = subscription.id
    user.purchased_portals = list(subscription.portals)
    user.enabled_features = list(subscription.features)
    await db.commit()
    return subscription


async def create_payment_record(
    db: AsyncSession,
    user: User,
    order: Order,
    payment_id: str = "pay_test0001",
    subscription: Optional[Subscription] = None,
    status: PaymentStatus = PaymentStatus.SUCCESS,
    minutes_ago: int = 0,
) -> Payment:
    """Insert a payment; created_at is set so ordering is deterministic."""
    payment = Payment(
        payment_id=payment_id,
        order_id=order.id,
        provider_order_id=order.provider_order_id,
        user_id=user.id,
        subscription_id=subscription.id if subscription else None,
        amount=order.amount,
        currency=order.currency,
        status=status,
        created_at=utcnow() - timedelta(minutes=minutes_ago),
    )
    db.add(payment)
    await db.commit()
    return payment


@pytest_asyncio.fixture
async def pending_order(db_session: AsyncSession, test_user: User) -> Order:
    return await create_order_record(db_session, test_user)
