# backend/app/db/models/__init__.py
from app.db.models.plan import Plan
from app.db.models.tenant import Tenant
from app.db.models.user import IdentityAccount
from app.db.models.payment import PaymentRecord
from app.db.models.audit_log import AuditEvent
from app.db.models.scoped import (
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

__all__ = [
    "Plan", "Tenant", "IdentityAccount", "PaymentRecord", "AuditEvent",
    "Student", "Attendance", "StaffAttendance", "Assessment", "Notice",
    "Timetable", "ClassSubjects", "StudentRemark", "AdminRemark",
    "StudentSkill", "AdminNotification", "TenantSettings",
]
