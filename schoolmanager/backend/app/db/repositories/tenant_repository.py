# backend/app/db/repositories/tenant_repository.py
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.tenant import Tenant
from app.db.models.plan import Plan
from app.db.models.scoped import TenantSettings
from app.db.repositories.base import BaseRepository


class TenantRepository(BaseRepository[Tenant]):
    """Repository for Tenant operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(Tenant, session)

    async def get_by_id(self, tenant_id: str, for_update: bool = False) -> Optional[Tenant]:
        """Get tenant by ID"""
        return await self.get(tenant_id, for_update=for_update)

    async def code_exists(self, code: str) -> bool:
        result = await self.session.execute(
            select(Tenant.id).where(Tenant.code == code).limit(1)
        )
        return result.first() is not None

    async def get_settings(self, tenant_id: str) -> Optional[TenantSettings]:
        result = await self.session.execute(
            select(TenantSettings).where(TenantSettings.id == tenant_id)
        )
        return result.scalar_one_or_none()


class PlanRepository(BaseRepository[Plan]):
    """Repository for capacity plans"""

    def __init__(self, session: AsyncSession):
        super().__init__(Plan, session)

    async def upsert(self, plan_id: str, name: str, max_members: int) -> Plan:
        plan = await self.get(plan_id)
        if plan is None:
            return await self.create({"id": plan_id, "name": name, "max_members": max_members})
        plan.name = name
        plan.max_members = max_members
        await self.session.flush()
        return plan
