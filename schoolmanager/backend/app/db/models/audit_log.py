# backend/app/db/models/audit_log.py
from sqlalchemy import Column, String, JSON, DateTime
from datetime import datetime
from app.db.base import Base, generate_id


class AuditEvent(Base):
    """Append-only audit trail.

    No foreign keys: events must outlive the tenant they describe.
    """
    __tablename__ = "audit_events"

    id = Column(String(36), primary_key=True, default=generate_id)
    event_type = Column(String(100), nullable=False, index=True)
    tenant_id = Column(String(36), nullable=True, index=True)
    actor_id = Column(String(128), nullable=True, index=True)
    actor_role = Column(String(50), nullable=True)
    entity_id = Column(String(128), nullable=True)

    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
