# backend/app/db/models/payment.py
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from app.db.base import BaseModel


class PaymentRecord(BaseModel):
    """One gateway transaction, keyed by its idempotency reference"""
    __tablename__ = "payments"

    reference = Column(String(100), primary_key=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)

    amount = Column(Integer, nullable=False)  # minor currency units
    currency = Column(String(3), nullable=False)
    plan = Column(String(20), nullable=True)

    status = Column(String(20), default="pending", nullable=False, index=True)
    gateway_response_code = Column(String(100), nullable=True)
    gateway_message = Column(String(500), nullable=True)
    authorization_url = Column(String(500), nullable=True)
    channel = Column(String(50), nullable=True)
    last_event = Column(String(100), nullable=True)
    last_source = Column(String(10), nullable=True)  # pull or push

    paid_at = Column(DateTime, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    initiated_by = Column(String(128), nullable=True)

    # bumped on every update; a write based on a stale read raises StaleDataError
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
