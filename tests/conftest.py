"""
YaadBooks Ledger - Test Configuration

Pytest fixtures and configuration. Tests run against an in-memory SQLite
database through aiosqlite; every test gets freshly created tables.
"""

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_async_session
from app.models import Account, AccountType, BankAccount
from main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
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
        autocommit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# IDENTITY FIXTURES
# ===========================================

@pytest.fixture
def company_id():
    return uuid4()


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def identity_headers(company_id, user_id):
    return {"X-Company-Id": str(company_id), "X-User-Id": str(user_id)}


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def cash_account(db_session: AsyncSession, company_id) -> Account:
    """Ledger account mirrored by the test bank account."""
    account = Account(
        company_id=company_id,
        code="1010",
        name="Cash at Bank - NCB",
        account_type=AccountType.ASSET,
    )
    db_session.add(account)
    await db_session.commit()
    return account


@pytest_asyncio.fixture
async def revenue_account(db_session: AsyncSession, company_id) -> Account:
    account = Account(
        company_id=company_id,
        code="4000",
        name="Sales Revenue",
        account_type=AccountType.REVENUE,
    )
    db_session.add(account)
    await db_session.commit()
    return account


@pytest_asyncio.fixture
async def expense_account(db_session: AsyncSession, company_id) -> Account:
    account = Account(
        company_id=company_id,
        code="6100",
        name="Office Expenses",
        account_type=AccountType.EXPENSE,
    )
    db_session.add(account)
    await db_session.commit()
    return account


@pytest_asyncio.fixture
async def bank_account(db_session: AsyncSession, company_id, cash_account: Account) -> BankAccount:
    """NCB operating account starting at J$10,000."""
    account = BankAccount(
        company_id=company_id,
        bank_name="National Commercial Bank Jamaica",
        account_name="Operating Account",
        account_number="123456789",
        currency="JMD",
        current_balance=Decimal("10000.00"),
        gl_account_id=cash_account.id,
    )
    db_session.add(account)
    await db_session.commit()
    return account


@pytest.fixture
def january():
    return date(2024, 1, 1), date(2024, 1, 31)
