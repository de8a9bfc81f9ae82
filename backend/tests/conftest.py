"""
Pytest fixtures for backend tests.

Storage runs on a throwaway SQLite file (aiosqlite) per test; Redis is
replaced by an in-memory counter.
"""
from __future__ import annotations

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_assinesaude")
os.environ.setdefault("CORS_ORIGINS", "http://localhost:5173,https://assinesaude.com.br")
os.environ.setdefault("FRONTEND_URL", "https://assinesaude.com.br")

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core import rate_limit
from app.core.database import Base, get_db
from app.core.security import create_access_token
from app.main import app
from app.models import DiscountCoupon, Plan, User


class FakeRedis:
    """
    Minimal async Redis stub for the fixed-window rate limiter.
    """

    def __init__(self) -> None:
        self._counters: dict[str, int] = {}

    async def incr(self, key: str) -> int:
        self._counters[key] = self._counters.get(key, 0) + 1
        return self._counters[key]

    async def expire(self, _key: str, _ttl: int) -> None:
        return None

    async def ttl(self, _key: str) -> int:
        return 30


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory bound to a fresh SQLite file with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def users(db: AsyncSession) -> dict[str, User]:
    """One user per role, plus a professional whose email is not verified."""
    created = {
        "admin": User(email="admin@assinesaude.com.br", email_verified=True, role="admin"),
        "professional": User(email="dra.ana@example.com", email_verified=True, role="professional"),
        "patient": User(email="joao@example.com", email_verified=True, role="patient"),
        "unverified": User(email="novo@example.com", email_verified=False, role="professional"),
    }
    db.add_all(created.values())
    await db.commit()
    return created


@pytest_asyncio.fixture
async def plans(db: AsyncSession) -> dict[str, Plan]:
    created = {
        "free": Plan(name="free", display_name="Gratuito", price_cents=0, is_free=True, sort_order=0),
        "50": Plan(name="50", display_name="Essencial", price_cents=5000, features=["Perfil"], sort_order=1),
        "100": Plan(name="100", display_name="Profissional", price_cents=10000, sort_order=2),
        "500": Plan(name="500", display_name="Clínica", price_cents=50000, sort_order=3),
    }
    db.add_all(created.values())
    await db.commit()
    return created


CouponFactory = Callable[..., Awaitable[DiscountCoupon]]


@pytest_asyncio.fixture
async def make_coupon(db: AsyncSession) -> CouponFactory:
    """Insert a coupon row; defaults describe a valid 20% coupon for everybody."""

    async def _make(
        code: str = "DESC20",
        *,
        discount_type: str = "percentage",
        discount_value: Any = Decimal("20"),
        target_audience: str = "all",
        valid_from: Optional[datetime] = None,
        valid_until: Optional[datetime] = None,
        max_uses: Optional[int] = None,
        current_uses: int = 0,
        is_active: bool = True,
        description: Optional[str] = None,
        professional_id=None,
    ) -> DiscountCoupon:
        coupon = DiscountCoupon(
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(str(discount_value)),
            target_audience=target_audience,
            valid_from=valid_from or datetime.utcnow() - timedelta(days=1),
            valid_until=valid_until,
            max_uses=max_uses,
            current_uses=current_uses,
            is_active=is_active,
            description=description,
            created_by_type="professional" if professional_id else "admin",
            professional_id=professional_id,
        )
        db.add(coupon)
        await db.commit()
        return coupon

    return _make


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    """Build a Bearer header for a given user."""

    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(user.id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> FakeRedis:
    redis = FakeRedis()
    monkeypatch.setattr(rate_limit, "get_redis_client", lambda: redis)
    return redis


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    fake_redis: FakeRedis,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client with dependency overrides.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        session = session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as async_client:
        yield async_client

    app.dependency_overrides.clear()
