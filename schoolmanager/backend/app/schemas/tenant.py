from pydantic import Field
from typing import Dict, Optional

from app.core.constants import PlanType
from app.schemas.base import CamelModel


class TenantCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=500)
    plan: PlanType
    plan_id: Optional[str] = None
    template_tenant_id: Optional[str] = None


class TenantCreated(CamelModel):
    tenant_id: str
    code: str


class TenantDeleted(CamelModel):
    deleted_identity_count: int
    deleted_by_collection: Dict[str, int]


class TenantPlanAssign(CamelModel):
    plan_id: str = Field(..., min_length=1)


class TenantPlan(CamelModel):
    tenant_id: str
    plan_id: Optional[str] = None
    max_members: Optional[int] = None


class PlanUpsert(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    max_members: int = Field(..., ge=0)


class PlanRead(CamelModel):
    id: str
    name: str
    max_members: int
