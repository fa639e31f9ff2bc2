# backend/app/api/v1/plans.py
from fastapi import APIRouter, Depends

from app.api.dependencies import get_tenant_registry, require_role
from app.core.constants import UserRole
from app.db.models.user import IdentityAccount
from app.schemas.tenant import PlanRead, PlanUpsert
from app.services.tenant_registry import TenantRegistry

router = APIRouter()


@router.put("/{plan_id}", response_model=PlanRead)
async def save_plan(
    plan_id: str,
    body: PlanUpsert,
    account: IdentityAccount = Depends(require_role(UserRole.SUPER_ADMIN)),
    registry: TenantRegistry = Depends(get_tenant_registry),
):
    """Create or update a capacity plan"""
    await registry.save_plan(plan_id, body.name, body.max_members, actor_id=account.id)
    return PlanRead(id=plan_id, name=body.name.strip(), max_members=body.max_members)
