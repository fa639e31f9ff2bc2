# backend/app/services/member_service.py
import logging
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.constants import TenantStatus
from app.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from app.db.models.scoped import Student
from app.db.repositories.base import BaseRepository
from app.db.repositories.tenant_repository import TenantRepository
from app.services.usage_counter import UsageCounterMaintainer

logger = logging.getLogger(__name__)


class MemberService:
    """Student writes that drive the member counter"""

    def __init__(self, session_factory: async_sessionmaker, counter: UsageCounterMaintainer):
        self.session_factory = session_factory
        self.counter = counter

    async def enroll(self, tenant_id: str, full_name: str, class_id: Optional[str] = None) -> Student:
        """Create a student and count it against the tenant's plan limit.

        The limit check reads the counter outside the counter's own
        transaction, so concurrent enrolments can overshoot it by a few.
        """
        async with self.session_factory() as session:
            async with session.begin():
                tenant = await TenantRepository(session).get_by_id(tenant_id)
                if tenant is None:
                    raise NotFoundError("Tenant not found")
                if tenant.status != TenantStatus.ACTIVE.value:
                    raise ValidationError("Cannot enroll members into an inactive tenant")
                if tenant.max_members is not None and tenant.member_count >= tenant.max_members:
                    raise ValidationError(
                        f"Member limit reached ({tenant.member_count}/{tenant.max_members})"
                    )

                student = await BaseRepository(Student, session).create({
                    "tenant_id": tenant_id,
                    "full_name": full_name.strip(),
                    "class_id": class_id,
                    "status": "active",
                })

        await self.counter.on_record_written(None, tenant_id)
        return student

    async def remove(self, student_id: str, tenant_id: Optional[str] = None) -> None:
        """Delete a student; ``tenant_id`` restricts the caller to their own tenant"""
        async with self.session_factory() as session:
            async with session.begin():
                repo = BaseRepository(Student, session)
                student = await repo.get(student_id)
                if student is None:
                    raise NotFoundError("Member not found")
                if tenant_id is not None and student.tenant_id != tenant_id:
                    raise PermissionDeniedError("Member belongs to another tenant")
                old_tenant_id = student.tenant_id
                # only the caller whose delete lands adjusts the counter
                result = await session.execute(
                    delete(Student).where(Student.id == student_id, Student.tenant_id == old_tenant_id)
                )
                if result.rowcount == 0:
                    raise NotFoundError("Member not found")

        await self.counter.on_record_written(old_tenant_id, None)

    async def transfer(self, student_id: str, new_tenant_id: str) -> Student:
        """Reassign a student to another tenant"""
        async with self.session_factory() as session:
            async with session.begin():
                target = await TenantRepository(session).get_by_id(new_tenant_id)
                if target is None:
                    raise NotFoundError("Target tenant not found")

                repo = BaseRepository(Student, session)
                student = await repo.get(student_id)
                if student is None:
                    raise NotFoundError("Member not found")
                old_tenant_id = student.tenant_id
                if old_tenant_id == new_tenant_id:
                    return student
                result = await session.execute(
                    update(Student)
                    .where(Student.id == student_id, Student.tenant_id == old_tenant_id)
                    .values(tenant_id=new_tenant_id)
                )
                if result.rowcount == 0:
                    raise ConflictError("Member was changed concurrently, retry the transfer")

        logger.info(f"Member {student_id} moved {old_tenant_id} -> {new_tenant_id}")
        await self.counter.on_record_written(old_tenant_id, new_tenant_id)
        return student
