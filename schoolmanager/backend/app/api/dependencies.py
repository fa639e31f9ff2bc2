# backend/app/api/dependencies.py
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from typing import AsyncGenerator, Optional

from app.core.audit_log import AuditLogger
from app.core.constants import TENANT_BOUND_ROLES, UserRole
from app.core.exceptions import AuthenticationError, PermissionDeniedError
from app.core.security import decode_token
from app.db.database import get_session_factory
from app.db.models.user import IdentityAccount
from app.db.repositories.user_repository import IdentityAccountRepository
from app.services.account_service import AccountService
from app.services.billing_gateway import BillingGateway
from app.services.deletion_engine import CascadingDeletionEngine
from app.services.identity_provider import IdentityProviderClient
from app.services.member_service import MemberService
from app.services.paystack_client import PaystackClient
from app.services.tenant_registry import TenantRegistry
from app.services.usage_counter import UsageCounterMaintainer

security = HTTPBearer(auto_error=False)


async def get_db(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session for read paths"""
    async with session_factory() as session:
        yield session


def get_audit_logger(session_factory: async_sessionmaker = Depends(get_session_factory)) -> AuditLogger:
    return AuditLogger(session_factory)


def get_paystack_client() -> PaystackClient:
    return PaystackClient()


def get_identity_provider() -> IdentityProviderClient:
    return IdentityProviderClient()


def get_tenant_registry(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    audit: AuditLogger = Depends(get_audit_logger),
    identity_provider: IdentityProviderClient = Depends(get_identity_provider),
) -> TenantRegistry:
    engine = CascadingDeletionEngine(session_factory, identity_provider, audit)
    return TenantRegistry(session_factory, audit, engine)


def get_billing_gateway(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    audit: AuditLogger = Depends(get_audit_logger),
    paystack: PaystackClient = Depends(get_paystack_client),
) -> BillingGateway:
    return BillingGateway(session_factory, paystack, audit)


def get_account_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    audit: AuditLogger = Depends(get_audit_logger),
    identity_provider: IdentityProviderClient = Depends(get_identity_provider),
) -> AccountService:
    return AccountService(session_factory, identity_provider, audit)


def get_member_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    audit: AuditLogger = Depends(get_audit_logger),
) -> MemberService:
    return MemberService(session_factory, UsageCounterMaintainer(session_factory, audit))


async def get_current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> IdentityAccount:
    """Resolve the bearer token to an active identity account"""
    if not credentials:
        raise AuthenticationError("Authentication required")

    payload = decode_token(credentials.credentials)
    account_id = payload.get("sub")
    if not account_id:
        raise AuthenticationError("Invalid token")

    account = await IdentityAccountRepository(db).get(account_id)
    if not account or not account.is_active:
        raise AuthenticationError("Account not found or inactive")

    return account


def require_role(*roles: UserRole):
    """Dependency to check the caller holds one of ``roles``"""
    allowed = {role.value for role in roles}
    bound = {role.value for role in TENANT_BOUND_ROLES}

    async def role_checker(account: IdentityAccount = Depends(get_current_account)) -> IdentityAccount:
        if account.role not in allowed:
            raise PermissionDeniedError(f"Requires one of: {', '.join(sorted(allowed))}")
        if account.role in bound and not account.tenant_id:
            raise PermissionDeniedError("Account is not linked to a tenant")
        return account

    return role_checker
