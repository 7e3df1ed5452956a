"""
Test fixtures for the marketplace backend.

Provides:
- In-memory SQLite database for isolated testing
- Async test client with session and cache overrides
- Factories for users, products, affiliates and (completed) orders
- Bearer / admin header helpers
"""
# IMPORTANT: Set environment variables BEFORE any other imports
import os

TEST_ADMIN_SECRET = "test_admin_secret"

os.environ["ADMIN_SECRET"] = TEST_ADMIN_SECRET
os.environ["JWT_SECRET"] = "test_jwt_secret"
# DB settings required by Settings validation (tests use SQLite in-memory, these are not actually used)
os.environ.setdefault("DB_USER", "test")
os.environ.setdefault("DB_PASSWORD", "test")
os.environ.setdefault("DB_NAME", "test")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
from datetime import datetime
from decimal import Decimal
from typing import AsyncGenerator, Optional

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import StaticPool

from backend.app.core.auth import create_user_jwt
from backend.app.core.base import Base
from backend.app.core.limiter import limiter
from backend.app.main import app
from backend.app.api.deps import get_session, get_cache
from backend.app.models.affiliate import AffiliateProfile
from backend.app.models.order import Order, OrderItem
from backend.app.models.product import Product, ProductVariation
from backend.app.models.user import UserProfile
# Register the remaining tables with Base.metadata
import backend.app.models.cart  # noqa: F401
import backend.app.models.commission  # noqa: F401
import backend.app.models.payment  # noqa: F401
import backend.app.models.withdrawal  # noqa: F401


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)

TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class MockCacheService:
    """In-memory stand-in for CacheService (same method surface, no Redis)."""

    KEY_PRODUCTS = "products:all"

    def __init__(self):
        self._cache = {}

    async def get(self, key: str):
        return self._cache.get(key)

    async def set(self, key: str, value, ttl: int = 300):
        self._cache[key] = value

    async def delete(self, key: str):
        self._cache.pop(key, None)

    async def delete_pattern(self, pattern: str):
        prefix = pattern.rstrip("*")
        for k in [k for k in self._cache if k.startswith(prefix)]:
            self._cache.pop(k, None)

    async def get_products(self):
        return self._cache.get(self.KEY_PRODUCTS)

    async def set_products(self, products):
        self._cache[self.KEY_PRODUCTS] = products

    async def invalidate_products(self):
        self._cache.pop(self.KEY_PRODUCTS, None)

    @classmethod
    def analytics_key(cls, name: str, **params) -> str:
        encoded = ",".join(f"{k}={params[k]}" for k in sorted(params) if params[k] is not None)
        return f"analytics:{name}:{encoded or 'all'}"

    async def get_analytics(self, key: str):
        return self._cache.get(key)

    async def set_analytics(self, key: str, report):
        self._cache[key] = report

    async def invalidate_analytics(self):
        await self.delete_pattern("analytics:*")


@pytest.fixture(scope="function")
async def test_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Fresh database session for each test.
    Creates all tables before and drops them after each test.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def mock_cache() -> MockCacheService:
    return MockCacheService()


@pytest.fixture
async def client(
    test_session: AsyncSession,
    mock_cache: MockCacheService,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for API tests.

    Each request gets its own session so it never shares a transaction
    with the test_session used by fixtures.
    """
    async def override_get_session():
        async with TestSessionLocal() as session:
            yield session

    async def override_get_cache():
        yield mock_cache

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_cache] = override_get_cache
    limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def two_sessions(tmp_path) -> AsyncGenerator[tuple, None]:
    """
    Two sessions on separate connections to one file-backed database, for
    races where both load a row before either commits.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as first, factory() as second:
        yield first, second

    await engine.dispose()


# --- Test Data Factories ---

async def create_user(
    session: AsyncSession,
    auth_id: str,
    name: Optional[str] = "Test User",
    is_admin: bool = False,
) -> UserProfile:
    user = UserProfile(auth_id=auth_id, name=name, phone="0712345678", is_admin=is_admin)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def create_affiliate(
    session: AsyncSession,
    code: str,
    auth_id: Optional[str] = None,
    referer: Optional[str] = None,
    balance: Decimal = Decimal("0"),
) -> AffiliateProfile:
    """Affiliate with a user; `balance` is booked as earned sales commission."""
    user = await create_user(session, auth_id or f"auth-{code.lower()}", name=f"Seller {code}")
    user.is_affiliate = True
    profile = AffiliateProfile(
        user_id=user.id,
        affiliate_code=code,
        referer=referer,
        balance=balance,
        total_earnings=balance,
        commission_earnings=balance,
        referals_earnings=Decimal("0"),
        total_withdrawals=Decimal("0"),
    )
    session.add(profile)
    await session.commit()
    await session.refresh(profile)
    return profile


async def create_product(
    session: AsyncSession,
    name: str = "Test Product",
    price: Optional[Decimal] = Decimal("1000.00"),
    stock: int = 10,
    category: Optional[str] = "Electronics",
    originalprice: Optional[Decimal] = None,
    is_active: bool = True,
) -> Product:
    product = Product(
        name=name,
        price=price,
        originalprice=originalprice,
        category=category,
        stock_number=stock,
        is_active=is_active,
        product_images=["https://cdn.example.com/p.jpg"],
    )
    session.add(product)
    await session.commit()
    await session.refresh(product)
    return product


async def create_order(
    session: AsyncSession,
    user_id: int,
    product: Product,
    quantity: int = 1,
    status: str = "completed",
    affiliate_code: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Order:
    """Order with a single line priced at the product's price. Stock is not touched."""
    price = Decimal(str(product.price))
    order = Order(
        user_id=user_id,
        total_amount=price * quantity,
        status=status,
        payment_completion=status != "pending",
        phone_number="0712345678",
        created_at=created_at or datetime.now(),
    )
    session.add(order)
    await session.flush()
    session.add(OrderItem(
        order_id=order.id,
        product_id=product.id,
        quantity=quantity,
        price=price,
        product_name=product.name,
        affiliate_code=affiliate_code,
        commission_earned=Decimal("0"),
        created_at=order.created_at,
    ))
    await session.commit()
    await session.refresh(order)
    return order


@pytest.fixture
async def test_user(test_session: AsyncSession) -> UserProfile:
    return await create_user(test_session, "user-1", name="Jane Shopper")


@pytest.fixture
async def admin_user(test_session: AsyncSession) -> UserProfile:
    return await create_user(test_session, "admin-1", name="Admin", is_admin=True)


@pytest.fixture
async def test_product(test_session: AsyncSession) -> Product:
    return await create_product(test_session)


@pytest.fixture
async def test_variation(test_session: AsyncSession, test_product: Product) -> ProductVariation:
    variation = ProductVariation(
        product_id=test_product.id,
        color="Red",
        size="M",
        quantity=5,
        price_adjustment=Decimal("50.00"),
        sku="TP-RED-M",
    )
    test_session.add(variation)
    await test_session.commit()
    await test_session.refresh(variation)
    return variation


@pytest.fixture
async def test_affiliate(test_session: AsyncSession) -> AffiliateProfile:
    return await create_affiliate(test_session, "AFTEST01")


# --- Auth Helpers ---

def auth_header_for(auth_id: str, name: Optional[str] = None) -> dict:
    """Bearer header for any auth id (the profile is created on first request)."""
    return {"Authorization": f"Bearer {create_user_jwt(auth_id, name=name)}"}


def admin_headers() -> dict:
    return {"X-Admin-Token": TEST_ADMIN_SECRET}


@pytest.fixture
def auth_header(test_user: UserProfile) -> dict:
    return auth_header_for(test_user.auth_id)
