# backend/app/api/v1/tenants.py
from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_account_service, get_tenant_registry, require_role
from app.core.constants import UserRole
from app.db.models.user import IdentityAccount
from app.middleware.rate_limit import sensitive_rate_limit
from app.schemas.account import AccountCreate, AccountRead
from app.schemas.tenant import TenantCreate, TenantCreated, TenantDeleted, TenantPlan, TenantPlanAssign
from app.services.account_service import AccountService
from app.services.tenant_registry import TenantRegistry

router = APIRouter()


@router.post(
    "",
    response_model=TenantCreated,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(sensitive_rate_limit)],
)
async def create_tenant(
    body: TenantCreate,
    account: IdentityAccount = Depends(require_role(UserRole.SUPER_ADMIN)),
    registry: TenantRegistry = Depends(get_tenant_registry),
):
    """Create a school with a unique code"""
    created = await registry.create_tenant(
        name=body.name,
        plan=body.plan.value,
        phone=body.phone,
        address=body.address,
        plan_id=body.plan_id,
        template_tenant_id=body.template_tenant_id,
        created_by=account.id,
    )
    return TenantCreated(tenant_id=created.tenant_id, code=created.code)


@router.delete("/{tenant_id}", response_model=TenantDeleted, dependencies=[Depends(sensitive_rate_limit)])
async def delete_tenant(
    tenant_id: str,
    account: IdentityAccount = Depends(require_role(UserRole.SUPER_ADMIN)),
    registry: TenantRegistry = Depends(get_tenant_registry),
):
    """
    Irreversibly delete a school and everything scoped to it

    A partial failure answers 207 with per-collection detail; calling again
    resumes the cleanup.
    """
    report = await registry.delete_tenant(tenant_id, actor_id=account.id)
    return TenantDeleted(
        deleted_identity_count=report.deleted_identity_count,
        deleted_by_collection=report.deleted_by_collection,
    )


@router.put("/{tenant_id}/plan", response_model=TenantPlan)
async def assign_plan(
    tenant_id: str,
    body: TenantPlanAssign,
    account: IdentityAccount = Depends(require_role(UserRole.SUPER_ADMIN)),
    registry: TenantRegistry = Depends(get_tenant_registry),
):
    """Attach a capacity plan to a school"""
    tenant = await registry.assign_plan(tenant_id, body.plan_id, actor_id=account.id)
    return TenantPlan(tenant_id=tenant.id, plan_id=tenant.plan_id, max_members=tenant.max_members)


@router.post("/{tenant_id}/admins", response_model=AccountRead, status_code=status.HTTP_201_CREATED)
async def create_tenant_admin(
    tenant_id: str,
    body: AccountCreate,
    account: IdentityAccount = Depends(require_role(UserRole.SUPER_ADMIN)),
    accounts: AccountService = Depends(get_account_service),
):
    """Provision a school admin login"""
    return await accounts.create_tenant_admin(tenant_id, body.email, body.full_name, actor_id=account.id)
