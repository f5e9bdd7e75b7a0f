"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; configure before importing the app.
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./snack-test-bootstrap.db")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RESEND_API_KEY"] = ""
os.environ["S3_BUCKET"] = ""

import uuid
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.security import create_access_token, hash_password
from app.db.session import get_db
from app.models import (
    Base,
    Budget,
    BudgetCriteria,
    CartItem,
    Category,
    Company,
    Product,
    PurchaseItem,
    PurchaseRequest,
    PurchaseStatus,
    User,
    UserRole,
)
from app.services.budget_service import current_period
from main import app

TEST_PASSWORD = "password1234"
_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """
    File-backed SQLite per test. Separate sessions get separate
    connections, so concurrent tests exercise real database locking.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'snack.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class Factory:
    """Inserts rows directly, outside any tenant context."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _save(self, instance):
        self.session.add(instance)
        await self.session.commit()
        return instance

    async def company(self, name: str = "Acme") -> Company:
        return await self._save(
            Company(name=name, business_number=f"BN-{uuid.uuid4().hex[:12]}")
        )

    async def user(
        self,
        company: Company,
        role: UserRole = UserRole.USER,
        is_active: bool = True,
        name: str = "Member",
    ) -> User:
        return await self._save(
            User(
                email=f"{uuid.uuid4().hex[:10]}@acme.io",
                name=name,
                hashed_password=_PASSWORD_HASH,
                role=role.value,
                is_active=is_active,
                company_id=company.id,
            )
        )

    async def category(self, category_id: int = 1, name: str = "Snacks") -> Category:
        existing = await self.session.get(Category, category_id)
        if existing is not None:
            return existing
        return await self._save(Category(id=category_id, name=name))

    async def product(
        self, company: Company, price: int = 1000, name: str = "Chips", is_active: bool = True
    ) -> Product:
        category = await self.category()
        return await self._save(
            Product(
                company_id=company.id,
                category_id=category.id,
                name=name,
                price=price,
                link="https://shop.example.com/item",
                is_active=is_active,
            )
        )

    async def cart_item(self, user: User, product: Product, quantity: int) -> CartItem:
        return await self._save(
            CartItem(user_id=user.id, product_id=product.id, quantity=quantity)
        )

    async def budget(
        self, company: Company, amount: int, year: int | None = None, month: int | None = None
    ) -> Budget:
        if year is None or month is None:
            year, month = current_period()
        return await self._save(
            Budget(company_id=company.id, year=year, month=month, amount=amount)
        )

    async def criteria(self, company: Company, amount: int) -> BudgetCriteria:
        return await self._save(BudgetCriteria(company_id=company.id, amount=amount))

    async def purchase_request(
        self,
        company: Company,
        requester: User,
        product: Product,
        quantity: int = 1,
        shipping_fee: int = 0,
        status: PurchaseStatus = PurchaseStatus.PENDING,
    ) -> PurchaseRequest:
        request = PurchaseRequest(
            company_id=company.id,
            requester_id=requester.id,
            status=status.value,
            total_price=product.price * quantity,
            shipping_fee=shipping_fee,
            items=[
                PurchaseItem(
                    product_id=product.id, quantity=quantity, price_snapshot=product.price
                )
            ],
        )
        return await self._save(request)


@pytest_asyncio.fixture
async def factory(session_factory):
    async with session_factory() as session:
        yield Factory(session)


def token_for(user: User, expires_delta: timedelta | None = None) -> str:
    return create_access_token(
        subject=user.id,
        company_id=user.company_id,
        email=user.email,
        role=user.role,
        expires_delta=expires_delta,
    )


def auth_header(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    """Build an Authorization header for a user."""
    return auth_header


@pytest.fixture
def token():
    return token_for
