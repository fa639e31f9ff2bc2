"""
Pytest configuration and fixtures
Shared test setup for all test modules
"""

import os

# Settings are read at import time, so the environment must be in place first
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["IDENTITY_PROJECT_ID"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import uuid
from typing import AsyncGenerator, Callable, Optional
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.main import app
from app.api.dependencies import get_identity_provider, get_paystack_client
from app.core.audit_log import AuditLogger
from app.core.security import create_access_token
from app.db.base import Base
from app.db.database import get_session_factory
from app.db import models  # noqa: F401
from app.db.models.tenant import Tenant
from app.db.models.user import IdentityAccount
from app.services.identity_provider import IdentityProviderClient
from app.services.paystack_client import PaystackClient


@pytest.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database file per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path}/test.db",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def audit(session_factory) -> AuditLogger:
    return AuditLogger(session_factory)


@pytest.fixture
def identity_provider() -> AsyncMock:
    """Identity provider that hands out fresh uids and deletes silently"""
    provider = AsyncMock(spec=IdentityProviderClient)
    provider.create_user.side_effect = lambda email, display_name: uuid.uuid4().hex
    provider.delete_user.return_value = None
    return provider


@pytest.fixture
def paystack() -> AsyncMock:
    """Paystack client returning a checkout URL per reference"""
    client = AsyncMock(spec=PaystackClient)
    client.initialize_transaction.side_effect = lambda **kwargs: {
        "authorization_url": f"https://checkout.paystack.com/{kwargs['reference']}",
        "access_code": "ac_test",
        "reference": kwargs["reference"],
    }
    client.verify_transaction.return_value = {"status": "pending"}
    return client


@pytest.fixture
def make_tenant(session_factory) -> Callable:
    """Insert a tenant row directly"""

    async def _make(
        name: str = "Greenwood Prep",
        code: Optional[str] = None,
        billing_status: str = "none",
        status: str = "active",
        member_count: int = 0,
        max_members: Optional[int] = None,
    ) -> Tenant:
        async with session_factory() as session:
            async with session.begin():
                tenant = Tenant(
                    name=name,
                    code=code or uuid.uuid4().hex[:8].upper(),
                    status=status,
                    billing_status=billing_status,
                    member_count=member_count,
                    max_members=max_members,
                )
                session.add(tenant)
        return tenant

    return _make


@pytest.fixture
def make_account(session_factory) -> Callable:
    """Insert an identity account directly"""

    async def _make(role: str, tenant_id: Optional[str] = None, email: Optional[str] = None) -> IdentityAccount:
        account_id = uuid.uuid4().hex
        async with session_factory() as session:
            async with session.begin():
                account = IdentityAccount(
                    id=account_id,
                    email=email or f"{account_id[:8]}@example.com",
                    full_name="Test Account",
                    role=role,
                    tenant_id=tenant_id,
                    status="active",
                )
                session.add(account)
        return account

    return _make


def auth_headers_for(account: IdentityAccount) -> dict:
    """Bearer header for an account"""
    token = create_access_token(data={"sub": account.id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> Callable:
    return auth_headers_for


@pytest.fixture
async def tenant(make_tenant) -> Tenant:
    return await make_tenant()


@pytest.fixture
async def super_admin(make_account) -> IdentityAccount:
    return await make_account("super_admin")


@pytest.fixture
async def tenant_admin(make_account, tenant) -> IdentityAccount:
    return await make_account("tenant_admin", tenant_id=tenant.id)


@pytest.fixture
def super_admin_headers(super_admin) -> dict:
    return auth_headers_for(super_admin)


@pytest.fixture
def tenant_admin_headers(tenant_admin) -> dict:
    return auth_headers_for(tenant_admin)


@pytest.fixture
async def client(session_factory, identity_provider, paystack) -> AsyncGenerator[AsyncClient, None]:
    """API client wired to the test database and fake external services"""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    app.dependency_overrides[get_paystack_client] = lambda: paystack

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
