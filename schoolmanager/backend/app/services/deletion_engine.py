# backend/app/services/deletion_engine.py
"""
Cascading tenant deletion.

Deleting a tenant is not one atomic operation. It runs in phases:

1. identities   external principals, then identity_accounts rows
2. collections  every table in TENANT_SCOPED_COLLECTIONS, in batches
3. root         the tenants row, only if phases 1-2 left nothing behind

Each batch commits on its own. If the process stops part way (timeout,
crash, a failing collection) the tenant row is still there and the caller
simply invokes ``delete_tenant`` again: every phase re-queries what is left,
so a rerun picks up where the last one stopped and a rerun on a fully
deleted tenant is a no-op returning zero counts. The window where some
children are gone but the tenant row remains is accepted; the reverse
(tenant row gone, children left) is never allowed.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.audit_log import AuditLogger, AuditEventType
from app.core.config import settings
from app.core.constants import MAX_DELETE_CONCURRENCY, STORAGE_BATCH_CEILING, TENANT_BOUND_ROLES, UserRole
from app.core.exceptions import PartialDeletionError, ValidationError
from app.db.models import (
    Tenant,
    IdentityAccount,
    PaymentRecord,
    Student,
    Attendance,
    StaffAttendance,
    Assessment,
    Notice,
    Timetable,
    ClassSubjects,
    StudentRemark,
    AdminRemark,
    StudentSkill,
    AdminNotification,
    TenantSettings,
)
from app.services.identity_provider import IdentityProviderClient

logger = logging.getLogger(__name__)

IDENTITY_COLLECTION = "identity_accounts"


@dataclass(frozen=True)
class ScopedCollection:
    """A table whose rows belong to one tenant"""
    name: str
    model: Any
    key: str = "tenant_id"  # column holding the tenant id

    @property
    def key_column(self):
        return getattr(self.model, self.key)

    @property
    def pk_column(self):
        return self.model.__mapper__.primary_key[0]


# Fixed, explicit list. A new tenant-scoped table must be added here.
TENANT_SCOPED_COLLECTIONS: Sequence[ScopedCollection] = (
    ScopedCollection("students", Student),
    ScopedCollection("attendance", Attendance),
    ScopedCollection("staff_attendance", StaffAttendance),
    ScopedCollection("assessments", Assessment),
    ScopedCollection("notices", Notice),
    ScopedCollection("timetables", Timetable),
    ScopedCollection("class_subjects", ClassSubjects),
    ScopedCollection("student_remarks", StudentRemark),
    ScopedCollection("admin_remarks", AdminRemark),
    ScopedCollection("student_skills", StudentSkill),
    ScopedCollection("admin_notifications", AdminNotification),
    ScopedCollection("payments", PaymentRecord),
    # keyed by the tenant id itself rather than a tenant_id column
    ScopedCollection("settings", TenantSettings, key="id"),
)


@dataclass
class DeletionReport:
    tenant_id: str
    deleted_identity_count: int = 0
    deleted_by_collection: Dict[str, int] = field(default_factory=dict)
    batches_by_collection: Dict[str, int] = field(default_factory=dict)
    failed_collections: Dict[str, str] = field(default_factory=dict)
    identity_failures: Dict[str, str] = field(default_factory=dict)
    tenant_deleted: bool = False

    @property
    def total_deleted(self) -> int:
        return self.deleted_identity_count + sum(self.deleted_by_collection.values())


def chunked(items: List[Any], size: int) -> List[List[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchDeletionError(Exception):
    """A batch failed after other batches of the same table had committed"""

    def __init__(self, cause: BaseException, deleted: int, batches: int):
        super().__init__(str(cause))
        self.cause = cause
        self.deleted = deleted
        self.batches = batches


class CascadingDeletionEngine:
    """Removes every record scoped to a tenant, then the tenant itself"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        identity_provider: IdentityProviderClient,
        audit: AuditLogger,
        batch_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        collections: Sequence[ScopedCollection] = TENANT_SCOPED_COLLECTIONS,
    ):
        batch_size = batch_size or settings.MAX_BATCH_SIZE
        if not 1 <= batch_size <= STORAGE_BATCH_CEILING:
            raise ValidationError(f"batch_size must be between 1 and {STORAGE_BATCH_CEILING}")
        self.session_factory = session_factory
        self.identity_provider = identity_provider
        self.audit = audit
        self.batch_size = batch_size
        self.concurrency = max(1, min(MAX_DELETE_CONCURRENCY, concurrency or settings.DELETE_CONCURRENCY))
        self.collections = collections

    async def delete_tenant(self, tenant_id: str, actor_id: Optional[str] = None) -> DeletionReport:
        """
        Irreversibly delete a tenant and everything scoped to it.

        Raises:
            PartialDeletionError: a collection could not be purged; the tenant
                row was kept and a rerun will resume the cleanup.
        """
        report = DeletionReport(tenant_id=tenant_id)
        semaphore = asyncio.Semaphore(self.concurrency)

        await self.audit.append(
            AuditEventType.TENANT_DELETION_STARTED,
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_id=tenant_id,
            metadata={"batch_size": self.batch_size, "concurrency": self.concurrency},
        )
        logger.info(f"Tenant deletion started: {tenant_id}", extra={"tenant_id": tenant_id})

        # Phase 1: identities
        try:
            await self._delete_identities(tenant_id, report, semaphore)
        except Exception as e:
            logger.error(f"Identity cleanup failed for {tenant_id}: {e}", extra={"tenant_id": tenant_id})
            report.failed_collections[IDENTITY_COLLECTION] = str(e)

        # Phase 2: scoped collections, continue on error
        for collection in self.collections:
            try:
                deleted, batches = await self._purge_collection(collection, tenant_id, semaphore)
            except Exception as e:
                logger.error(
                    f"Failed purging {collection.name} for {tenant_id}: {e}",
                    extra={"tenant_id": tenant_id},
                )
                report.failed_collections[collection.name] = str(e)
                if isinstance(e, BatchDeletionError):
                    report.deleted_by_collection[collection.name] = e.deleted
                    report.batches_by_collection[collection.name] = e.batches
                else:
                    report.deleted_by_collection.setdefault(collection.name, 0)
                await self._audit_collection(tenant_id, actor_id, collection.name, report, error=str(e))
                continue

            report.deleted_by_collection[collection.name] = deleted
            report.batches_by_collection[collection.name] = batches
            if deleted:
                await self._audit_collection(tenant_id, actor_id, collection.name, report)

        if report.failed_collections:
            await self.audit.append(
                AuditEventType.TENANT_DELETION_FAILED,
                tenant_id=tenant_id,
                actor_id=actor_id,
                entity_id=tenant_id,
                metadata={
                    "failed_collections": report.failed_collections,
                    "deleted_by_collection": report.deleted_by_collection,
                },
            )
            raise PartialDeletionError(
                f"Tenant {tenant_id} partially deleted; re-run to resume",
                report,
            )

        # Phase 3: root, always last. A failure here propagates to the caller.
        report.tenant_deleted = await self._delete_root(tenant_id)

        await self.audit.append(
            AuditEventType.TENANT_DELETION_COMPLETED,
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_id=tenant_id,
            metadata={
                "deleted_identity_count": report.deleted_identity_count,
                "deleted_by_collection": report.deleted_by_collection,
                "identity_failures": report.identity_failures,
                "tenant_deleted": report.tenant_deleted,
            },
        )
        logger.info(
            f"Tenant deletion completed: {tenant_id}, {report.total_deleted} records",
            extra={"tenant_id": tenant_id},
        )
        return report

    async def _delete_identities(self, tenant_id: str, report: DeletionReport, semaphore: asyncio.Semaphore) -> None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(IdentityAccount.id, IdentityAccount.role).where(IdentityAccount.tenant_id == tenant_id)
            )
            rows = result.all()

        bound_roles = {role.value for role in TENANT_BOUND_ROLES}
        account_ids = [row.id for row in rows if row.role in bound_roles]
        unlinked = [row.id for row in rows if row.role == UserRole.SUPER_ADMIN.value]

        # Principals first, best effort
        async def delete_principal(uid: str) -> None:
            async with semaphore:
                try:
                    await self.identity_provider.delete_user(uid)
                except Exception as e:
                    logger.warning(f"Principal delete failed for {uid}: {e}", extra={"tenant_id": tenant_id})
                    report.identity_failures[uid] = str(e)

        await asyncio.gather(*(delete_principal(uid) for uid in account_ids))

        if unlinked:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.execute(
                        update(IdentityAccount)
                        .where(IdentityAccount.id.in_(unlinked))
                        .values(tenant_id=None)
                    )

        try:
            deleted, batches = await self._delete_in_batches(
                IdentityAccount, IdentityAccount.id, account_ids, semaphore
            )
        except BatchDeletionError as e:
            report.deleted_identity_count = e.deleted
            report.batches_by_collection[IDENTITY_COLLECTION] = e.batches
            raise
        report.deleted_identity_count = deleted
        report.batches_by_collection[IDENTITY_COLLECTION] = batches

    async def _purge_collection(self, collection: ScopedCollection, tenant_id: str, semaphore: asyncio.Semaphore):
        async with self.session_factory() as session:
            result = await session.execute(
                select(collection.pk_column).where(collection.key_column == tenant_id)
            )
            ids = list(result.scalars().all())

        if not ids:
            return 0, 0
        return await self._delete_in_batches(collection.model, collection.pk_column, ids, semaphore)

    async def _delete_in_batches(self, model, pk_column, ids: List[Any], semaphore: asyncio.Semaphore):
        """Delete ``ids`` in committed batches no larger than the batch size.

        Returns (rows deleted, batches committed). If any batch fails,
        BatchDeletionError is raised once the others have finished and
        carries the counts of the batches that did commit.
        """
        if not ids:
            return 0, 0

        async def commit_batch(batch: List[Any]) -> int:
            async with semaphore:
                async with self.session_factory() as session:
                    async with session.begin():
                        result = await session.execute(delete(model).where(pk_column.in_(batch)))
                        return result.rowcount

        results = await asyncio.gather(
            *(commit_batch(batch) for batch in chunked(ids, self.batch_size)),
            return_exceptions=True,
        )
        committed = [r for r in results if not isinstance(r, BaseException)]
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            raise BatchDeletionError(errors[0], sum(committed), len(committed))
        return sum(committed), len(committed)

    async def _delete_root(self, tenant_id: str) -> bool:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(delete(Tenant).where(Tenant.id == tenant_id))
                    return result.rowcount > 0
        except Exception as e:
            logger.error(f"Failed deleting tenant row {tenant_id}: {e}", extra={"tenant_id": tenant_id})
            raise

    async def _audit_collection(
        self,
        tenant_id: str,
        actor_id: Optional[str],
        name: str,
        report: DeletionReport,
        error: Optional[str] = None,
    ) -> None:
        metadata: Dict[str, Any] = {
            "collection": name,
            "deleted": report.deleted_by_collection.get(name, 0),
            "batches": report.batches_by_collection.get(name, 0),
        }
        if error:
            metadata["error"] = error
        await self.audit.append(
            AuditEventType.TENANT_COLLECTION_PURGED,
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_id=tenant_id,
            metadata=metadata,
        )
