# backend/app/db/models/scoped.py
"""
Tenant-scoped record kinds.

Every table here carries the owning tenant's id. The attendance, gradebook
and notice screens own their contents; the backend only needs the scoping key
(for cascading deletion) and, for students, the member counter.
"""
from datetime import datetime
from sqlalchemy import Column, String, JSON, DateTime, ForeignKey
from sqlalchemy.orm import declared_attr

from app.db.base import Base, generate_id


class TenantScopedMixin:
    id = Column(String(36), primary_key=True, default=generate_id)
    data = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    @declared_attr
    def tenant_id(cls):
        return Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)


class Student(TenantScopedMixin, Base):
    """Member record; the counted kind behind Tenant.member_count"""
    __tablename__ = "students"

    full_name = Column(String(255), nullable=False)
    class_id = Column(String(64), nullable=True)
    status = Column(String(20), default="active", nullable=False)


class Attendance(TenantScopedMixin, Base):
    __tablename__ = "attendance"


class StaffAttendance(TenantScopedMixin, Base):
    __tablename__ = "staff_attendance"


class Assessment(TenantScopedMixin, Base):
    __tablename__ = "assessments"


class Notice(TenantScopedMixin, Base):
    __tablename__ = "notices"


class Timetable(TenantScopedMixin, Base):
    __tablename__ = "timetables"


class ClassSubjects(TenantScopedMixin, Base):
    __tablename__ = "class_subjects"


class StudentRemark(TenantScopedMixin, Base):
    __tablename__ = "student_remarks"


class AdminRemark(TenantScopedMixin, Base):
    __tablename__ = "admin_remarks"


class StudentSkill(TenantScopedMixin, Base):
    __tablename__ = "student_skills"


class AdminNotification(TenantScopedMixin, Base):
    __tablename__ = "admin_notifications"


class TenantSettings(Base):
    """Settings blob keyed by the tenant id itself"""
    __tablename__ = "settings"

    id = Column(String(36), ForeignKey("tenants.id"), primary_key=True)
    data = Column(JSON, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
