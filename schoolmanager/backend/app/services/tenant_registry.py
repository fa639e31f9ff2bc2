# backend/app/services/tenant_registry.py
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.audit_log import AuditLogger, AuditEventType
from app.core.constants import (
    DEFAULT_TENANT_SETTINGS,
    TRIAL_PERIOD,
    BillingStatus,
    PlanType,
    TenantStatus,
)
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.tenant import code_candidates, derive_base_code
from app.db.models.scoped import TenantSettings
from app.db.models.tenant import Tenant
from app.db.repositories.tenant_repository import PlanRepository, TenantRepository
from app.services.deletion_engine import CascadingDeletionEngine, DeletionReport

logger = logging.getLogger(__name__)


@dataclass
class TenantCreated:
    tenant_id: str
    code: str


class TenantRegistry:
    """Tenant lifecycle: creation with unique codes, plans, deletion"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        audit: AuditLogger,
        deletion_engine: CascadingDeletionEngine,
    ):
        self.session_factory = session_factory
        self.audit = audit
        self.deletion_engine = deletion_engine

    async def create_tenant(
        self,
        name: str,
        plan: str,
        phone: Optional[str] = None,
        address: Optional[str] = None,
        plan_id: Optional[str] = None,
        template_tenant_id: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> TenantCreated:
        """
        Create a tenant with a unique human-readable code

        Each candidate code is checked and then inserted in its own
        transaction. The unique index on tenants.code decides races: a
        concurrent insert of the same code fails here with IntegrityError and
        the next candidate is tried.

        Raises:
            ValidationError: empty name or unknown plan
            NotFoundError: plan_id or template tenant does not exist
            ConflictError: every candidate code was taken
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Tenant name is required")
        try:
            plan = PlanType(plan).value
        except ValueError:
            raise ValidationError(f"Invalid plan: {plan}")

        max_members = None
        settings_data: Dict[str, Any] = dict(DEFAULT_TENANT_SETTINGS)
        async with self.session_factory() as session:
            if plan_id:
                capacity = await PlanRepository(session).get(plan_id)
                if capacity is None:
                    raise NotFoundError(f"Plan not found: {plan_id}")
                max_members = capacity.max_members
            if template_tenant_id:
                template = await TenantRepository(session).get_settings(template_tenant_id)
                if template is None:
                    raise NotFoundError(f"Template tenant settings not found: {template_tenant_id}")
                settings_data = dict(template.data or {})

        plan_ends_at = datetime.utcnow() + TRIAL_PERIOD if plan == PlanType.TRIAL.value else None
        base = derive_base_code(name)

        for candidate in code_candidates(base):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        repo = TenantRepository(session)
                        if await repo.code_exists(candidate):
                            continue

                        tenant = await repo.create({
                            "name": name,
                            "code": candidate,
                            "phone": phone,
                            "address": address,
                            "status": TenantStatus.ACTIVE.value,
                            "plan": plan,
                            "plan_ends_at": plan_ends_at,
                            "plan_id": plan_id,
                            "max_members": max_members,
                            "member_count": 0,
                            "billing_status": BillingStatus.NONE.value,
                            "created_by": created_by,
                        })
                        session.add(TenantSettings(id=tenant.id, data=settings_data))
                        tenant_id = tenant.id
            except IntegrityError:
                logger.info(f"Tenant code {candidate} taken concurrently, trying next")
                continue

            logger.info(f"Tenant created: {tenant_id} ({candidate})", extra={"tenant_id": tenant_id})
            await self.audit.append(
                AuditEventType.TENANT_CREATED,
                tenant_id=tenant_id,
                actor_id=created_by,
                entity_id=tenant_id,
                metadata={"name": name, "code": candidate, "plan": plan, "plan_id": plan_id},
            )
            if template_tenant_id:
                await self.audit.append(
                    AuditEventType.TENANT_SETTINGS_CLONED,
                    tenant_id=tenant_id,
                    actor_id=created_by,
                    entity_id=tenant_id,
                    metadata={"template_tenant_id": template_tenant_id},
                )
            return TenantCreated(tenant_id=tenant_id, code=candidate)

        logger.error(f"Exhausted tenant code candidates for base {base}")
        raise ConflictError(f"Could not allocate a unique code for '{name}'")

    async def delete_tenant(self, tenant_id: str, actor_id: Optional[str] = None) -> DeletionReport:
        """Delete a tenant and all of its records. Safe to call again after a partial run."""
        return await self.deletion_engine.delete_tenant(tenant_id, actor_id=actor_id)

    async def save_plan(
        self,
        plan_id: str,
        name: str,
        max_members: int,
        actor_id: Optional[str] = None,
    ) -> None:
        if not plan_id or not (name or "").strip():
            raise ValidationError("Plan id and name are required")
        if max_members < 0:
            raise ValidationError("max_members must not be negative")

        async with self.session_factory() as session:
            async with session.begin():
                await PlanRepository(session).upsert(plan_id, name.strip(), max_members)

        await self.audit.append(
            AuditEventType.PLAN_SAVED,
            actor_id=actor_id,
            entity_id=plan_id,
            metadata={"name": name.strip(), "max_members": max_members},
        )

    async def assign_plan(self, tenant_id: str, plan_id: str, actor_id: Optional[str] = None) -> Tenant:
        """Attach a capacity plan to a tenant, copying its member limit"""
        async with self.session_factory() as session:
            async with session.begin():
                capacity = await PlanRepository(session).get(plan_id)
                if capacity is None:
                    raise NotFoundError(f"Plan not found: {plan_id}")
                tenant = await TenantRepository(session).get_by_id(tenant_id, for_update=True)
                if tenant is None:
                    raise NotFoundError("Tenant not found")
                previous = tenant.plan_id
                tenant.plan_id = capacity.id
                tenant.max_members = capacity.max_members

        await self.audit.append(
            AuditEventType.TENANT_PLAN_UPDATED,
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_id=tenant_id,
            metadata={"previous_plan_id": previous, "plan_id": plan_id, "max_members": capacity.max_members},
        )
        return tenant
