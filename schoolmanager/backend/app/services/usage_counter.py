# backend/app/services/usage_counter.py
"""
Tenant usage counter maintenance.

Tenant.member_count is derived from the students table and is only ever
written here, by a single UPDATE on the locked tenant row that floors the
result at zero.

A reassignment between tenants is two independent transactions: the old
tenant is decremented first and the new one incremented second, so for a
brief window (or permanently, if the second transaction fails) the two
counts are out of step. The counters are eventually consistent across
tenants, never atomically moved.
"""
import logging
from typing import Optional

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.audit_log import AuditLogger, AuditEventType
from app.db.models.tenant import Tenant
from app.db.repositories.tenant_repository import TenantRepository

logger = logging.getLogger(__name__)


class UsageCounterMaintainer:
    """Keeps Tenant.member_count consistent with member writes"""

    def __init__(self, session_factory: async_sessionmaker, audit: AuditLogger):
        self.session_factory = session_factory
        self.audit = audit

    async def apply_delta(self, tenant_id: Optional[str], delta: int) -> Optional[int]:
        """
        Add ``delta`` to a tenant's member count, flooring at zero.

        Returns the new count, or None when skipped (no tenant id, zero delta,
        or the tenant no longer exists).
        """
        if not tenant_id or delta == 0:
            return None

        clamped_from = None
        async with self.session_factory() as session:
            async with session.begin():
                tenant = await TenantRepository(session).get_by_id(tenant_id, for_update=True)
                if tenant is None:
                    logger.debug(f"Counter update skipped, tenant gone: {tenant_id}")
                    return None

                current = tenant.member_count or 0
                # computed in the UPDATE so concurrent deltas never overwrite each other
                result = await session.execute(
                    update(Tenant)
                    .where(Tenant.id == tenant_id)
                    .values(member_count=case(
                        (Tenant.member_count + delta < 0, 0),
                        else_=Tenant.member_count + delta,
                    ))
                    .returning(Tenant.member_count)
                    .execution_options(synchronize_session=False)
                )
                new_count = result.scalar_one()
                if current + delta < 0:
                    clamped_from = current + delta

        if clamped_from is not None:
            logger.warning(
                f"member_count for {tenant_id} would drop to {clamped_from}, floored at 0",
                extra={"tenant_id": tenant_id},
            )
            await self.audit.append(
                AuditEventType.MEMBER_COUNT_CLAMPED,
                tenant_id=tenant_id,
                entity_id=tenant_id,
                metadata={"previous": current, "delta": delta},
            )
        return new_count

    async def on_record_written(self, before_tenant_id: Optional[str], after_tenant_id: Optional[str]) -> None:
        """
        React to a counted record being created, deleted or reassigned.

        create:   (None, new)  -> +1 on new
        delete:   (old, None)  -> -1 on old
        reassign: (old, new)   -> -1 on old, then +1 on new, separately
        """
        if before_tenant_id == after_tenant_id:
            return
        if before_tenant_id:
            await self.apply_delta(before_tenant_id, -1)
        if after_tenant_id:
            await self.apply_delta(after_tenant_id, +1)
