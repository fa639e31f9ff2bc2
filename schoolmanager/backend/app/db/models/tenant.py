# backend/app/db/models/tenant.py
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, CheckConstraint
from app.db.base import BaseModel, generate_id


class Tenant(BaseModel):
    """A school: the unit of isolation for every scoped record"""
    __tablename__ = "tenants"
    __table_args__ = (
        CheckConstraint("member_count >= 0", name="ck_tenants_member_count_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=generate_id, index=True)
    name = Column(String(255), nullable=False)
    code = Column(String(16), nullable=False, unique=True, index=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)

    # Status
    status = Column(String(20), default="active", nullable=False, index=True)

    # Plan
    plan = Column(String(20), default="free", nullable=False, index=True)
    plan_ends_at = Column(DateTime, nullable=True)
    plan_id = Column(String(64), ForeignKey("plans.id"), nullable=True)
    max_members = Column(Integer, nullable=True)  # None means unlimited

    # Usage counters, maintained only by UsageCounterMaintainer
    member_count = Column(Integer, default=0, nullable=False)

    # Billing sub-record
    billing_status = Column(String(20), default="none", nullable=False)
    billing_customer_ref = Column(String(255), nullable=True)
    billing_reference = Column(String(100), nullable=True)
    billing_last_payment_at = Column(DateTime, nullable=True)

    created_by = Column(String(128), nullable=True)
