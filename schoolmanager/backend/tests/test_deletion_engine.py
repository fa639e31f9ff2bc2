"""
Tests for cascading tenant deletion

Covers batching, idempotent re-runs, the empty scan after deletion and the
partial-failure path that keeps the tenant row.
"""
import uuid

import pytest
from sqlalchemy import delete, func, select, text

from app.core.constants import MAX_DELETE_CONCURRENCY
from app.core.exceptions import PartialDeletionError, ValidationError
from app.db.models.audit_log import AuditEvent
from app.db.models.payment import PaymentRecord
from app.db.models.scoped import Notice, Student, TenantSettings, Timetable
from app.db.models.tenant import Tenant
from app.db.models.user import IdentityAccount
from app.services import deletion_engine as engine_module
from app.services.deletion_engine import (
    TENANT_SCOPED_COLLECTIONS,
    CascadingDeletionEngine,
    chunked,
)


async def seed_tenant_records(session_factory, tenant_id: str, students: int = 10):
    async with session_factory() as session:
        async with session.begin():
            session.add_all([
                Student(tenant_id=tenant_id, full_name=f"Student {i}") for i in range(students)
            ])
            session.add_all([Notice(tenant_id=tenant_id, data={"title": f"Notice {i}"}) for i in range(3)])
            session.add(Timetable(tenant_id=tenant_id, data={"monday": []}))
            session.add(TenantSettings(id=tenant_id, data={"currentTerm": "Term 1"}))
            session.add(PaymentRecord(
                reference=f"sch_{uuid.uuid4().hex[:12]}",
                tenant_id=tenant_id,
                amount=5000,
                currency="GHS",
                status="success",
            ))


async def count_scoped(session_factory, tenant_id: str) -> int:
    total = 0
    async with session_factory() as session:
        for collection in TENANT_SCOPED_COLLECTIONS:
            result = await session.execute(
                select(func.count()).select_from(collection.model).where(collection.key_column == tenant_id)
            )
            total += result.scalar_one()
        result = await session.execute(
            select(func.count()).select_from(IdentityAccount).where(IdentityAccount.tenant_id == tenant_id)
        )
        total += result.scalar_one()
    return total


def test_chunked_sizes():
    sizes = [len(batch) for batch in chunked(list(range(1240)), 400)]
    assert sizes == [400, 400, 400, 40]


@pytest.mark.asyncio
class TestCascadingDeletion:
    """CascadingDeletionEngine.delete_tenant"""

    @pytest.fixture
    def engine_factory(self, session_factory, identity_provider, audit):
        def _make(batch_size: int = 400, concurrency: int = 4) -> CascadingDeletionEngine:
            return CascadingDeletionEngine(
                session_factory,
                identity_provider,
                audit,
                batch_size=batch_size,
                concurrency=concurrency,
            )
        return _make

    async def test_large_collection_deleted_in_batches(self, engine_factory, make_tenant, session_factory):
        tenant = await make_tenant()
        await seed_tenant_records(session_factory, tenant.id, students=1240)

        report = await engine_factory(batch_size=400).delete_tenant(tenant.id)

        assert report.deleted_by_collection["students"] == 1240
        assert report.batches_by_collection["students"] == 4
        assert report.deleted_by_collection["notices"] == 3
        assert report.deleted_by_collection["settings"] == 1
        assert report.deleted_by_collection["payments"] == 1
        assert report.tenant_deleted is True

    async def test_empty_scan_after_deletion(self, engine_factory, make_tenant, make_account, session_factory):
        tenant = await make_tenant()
        other = await make_tenant(name="Other School")
        await seed_tenant_records(session_factory, tenant.id)
        await seed_tenant_records(session_factory, other.id, students=5)
        await make_account("tenant_admin", tenant_id=tenant.id)
        await make_account("staff", tenant_id=tenant.id)

        report = await engine_factory().delete_tenant(tenant.id)

        assert report.deleted_identity_count == 2
        assert await count_scoped(session_factory, tenant.id) == 0
        async with session_factory() as session:
            assert await session.get(Tenant, tenant.id) is None
            assert await session.get(Tenant, other.id) is not None
        # other tenants untouched: 5 students, 3 notices, timetable, settings, payment
        assert await count_scoped(session_factory, other.id) == 11

    async def test_principals_deleted_before_accounts(
        self, engine_factory, make_tenant, make_account, identity_provider
    ):
        tenant = await make_tenant()
        admin = await make_account("tenant_admin", tenant_id=tenant.id)
        staff = await make_account("staff", tenant_id=tenant.id)

        await engine_factory().delete_tenant(tenant.id)

        deleted_uids = {call.args[0] for call in identity_provider.delete_user.await_args_list}
        assert deleted_uids == {admin.id, staff.id}

    async def test_principal_failure_is_not_fatal(
        self, engine_factory, make_tenant, make_account, identity_provider, session_factory
    ):
        tenant = await make_tenant()
        admin = await make_account("tenant_admin", tenant_id=tenant.id)
        identity_provider.delete_user.side_effect = RuntimeError("provider down")

        report = await engine_factory().delete_tenant(tenant.id)

        assert admin.id in report.identity_failures
        assert report.deleted_identity_count == 1
        assert report.tenant_deleted is True

    async def test_super_admin_is_unlinked_not_deleted(
        self, engine_factory, make_tenant, make_account, session_factory, identity_provider
    ):
        tenant = await make_tenant()
        root = await make_account("super_admin", tenant_id=tenant.id)

        report = await engine_factory().delete_tenant(tenant.id)

        async with session_factory() as session:
            kept = await session.get(IdentityAccount, root.id)
        assert kept is not None
        assert kept.tenant_id is None
        assert report.deleted_identity_count == 0
        identity_provider.delete_user.assert_not_awaited()

    async def test_redelete_returns_zero_counts(self, engine_factory, make_tenant, session_factory):
        tenant = await make_tenant()
        await seed_tenant_records(session_factory, tenant.id)
        engine = engine_factory()

        await engine.delete_tenant(tenant.id)
        again = await engine.delete_tenant(tenant.id)

        assert again.deleted_identity_count == 0
        assert sum(again.deleted_by_collection.values()) == 0
        assert again.tenant_deleted is False
        assert again.failed_collections == {}

    async def test_failed_collection_keeps_tenant_and_resumes(
        self, engine_factory, make_tenant, session_factory, monkeypatch
    ):
        tenant = await make_tenant()
        await seed_tenant_records(session_factory, tenant.id, students=25)
        engine = engine_factory(batch_size=10)

        original = engine._purge_collection

        async def flaky(collection, tenant_id, semaphore):
            if collection.name == "notices":
                raise RuntimeError("storage unavailable")
            return await original(collection, tenant_id, semaphore)

        monkeypatch.setattr(engine, "_purge_collection", flaky)

        with pytest.raises(PartialDeletionError) as exc_info:
            await engine.delete_tenant(tenant.id)

        report = exc_info.value.report
        assert "notices" in report.failed_collections
        assert report.deleted_by_collection["students"] == 25
        assert report.tenant_deleted is False
        assert exc_info.value.status_code == 207
        body = exc_info.value.to_dict()
        assert body["code"] == "partial_deletion"
        assert "notices" in body["failedCollections"]

        async with session_factory() as session:
            assert await session.get(Tenant, tenant.id) is not None
            remaining = await session.execute(
                select(func.count()).select_from(Notice).where(Notice.tenant_id == tenant.id)
            )
            assert remaining.scalar_one() == 3

        monkeypatch.setattr(engine, "_purge_collection", original)
        resumed = await engine.delete_tenant(tenant.id)

        assert resumed.deleted_by_collection["notices"] == 3
        assert resumed.deleted_by_collection["students"] == 0
        assert resumed.tenant_deleted is True
        assert await count_scoped(session_factory, tenant.id) == 0

    async def test_audit_trail_written(self, engine_factory, make_tenant, session_factory):
        tenant = await make_tenant()
        await seed_tenant_records(session_factory, tenant.id)

        await engine_factory().delete_tenant(tenant.id, actor_id="root")

        async with session_factory() as session:
            events = (await session.execute(
                select(AuditEvent).where(AuditEvent.tenant_id == tenant.id)
            )).scalars().all()

        types = [event.event_type for event in events]
        assert "tenant_deletion_started" in types
        assert "tenant_deletion_completed" in types
        assert "tenant_deletion_failed" not in types
        purged = {e.details["collection"] for e in events if e.event_type == "tenant_collection_purged"}
        assert purged == {"students", "notices", "timetables", "settings", "payments"}

    async def test_batch_size_above_ceiling_rejected(self, session_factory, identity_provider, audit):
        with pytest.raises(ValidationError):
            CascadingDeletionEngine(session_factory, identity_provider, audit, batch_size=501)

    async def test_failed_batch_reports_committed_rows(
        self, engine_factory, make_tenant, session_factory, monkeypatch
    ):
        tenant = await make_tenant()
        await seed_tenant_records(session_factory, tenant.id, students=30)
        engine = engine_factory(batch_size=10, concurrency=1)

        student_batches = []

        def third_student_batch_fails(model):
            stmt = delete(model)
            if model is Student:
                student_batches.append(model)
                if len(student_batches) == 3:
                    return stmt.where(text("no_such_column = 1"))
            return stmt

        monkeypatch.setattr(engine_module, "delete", third_student_batch_fails)

        with pytest.raises(PartialDeletionError) as exc_info:
            await engine.delete_tenant(tenant.id)

        report = exc_info.value.report
        assert "students" in report.failed_collections
        assert report.deleted_by_collection["students"] == 20
        assert report.batches_by_collection["students"] == 2

        async with session_factory() as session:
            remaining = await session.execute(
                select(func.count()).select_from(Student).where(Student.tenant_id == tenant.id)
            )
            assert remaining.scalar_one() == 10
            events = (await session.execute(
                select(AuditEvent).where(AuditEvent.event_type == "tenant_collection_purged")
            )).scalars().all()

        students_event = next(e for e in events if e.details["collection"] == "students")
        assert students_event.details["deleted"] == 20
        assert "error" in students_event.details

    async def test_concurrency_capped(self, session_factory, identity_provider, audit):
        engine = CascadingDeletionEngine(session_factory, identity_provider, audit, concurrency=64)
        assert engine.concurrency == MAX_DELETE_CONCURRENCY
