# backend/app/core/audit_log.py
"""
Best-effort audit trail.

``AuditLogger.append`` is fire-and-forget from the caller's point of view:
the event is written in its own short transaction, bounded by a timeout, and
any failure is logged as a warning and swallowed. An audit outage must never
abort a tenant lifecycle or billing operation.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional, Union

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.db.models.audit_log import AuditEvent

logger = logging.getLogger(__name__)

AUDIT_WRITE_TIMEOUT_SECONDS = 2.0


class AuditEventType(str, Enum):
    TENANT_CREATED = "tenant_created"
    TENANT_SETTINGS_CLONED = "tenant_settings_cloned"
    TENANT_PLAN_UPDATED = "tenant_plan_updated"
    TENANT_DELETION_STARTED = "tenant_deletion_started"
    TENANT_COLLECTION_PURGED = "tenant_collection_purged"
    TENANT_DELETION_COMPLETED = "tenant_deletion_completed"
    TENANT_DELETION_FAILED = "tenant_deletion_failed"
    PLAN_SAVED = "plan_saved"
    TENANT_ADMIN_CREATED = "tenant_admin_created"
    STAFF_CREATED = "staff_created"
    TENANT_ADMIN_EMAIL_UPDATED = "tenant_admin_email_updated"
    TENANT_ADMIN_PASSWORD_RESET = "tenant_admin_password_reset"
    MEMBER_COUNT_CLAMPED = "member_count_clamped"
    BILLING_INITIATED = "billing_initiated"
    BILLING_PAYMENT_SUCCEEDED = "billing_payment_succeeded"
    BILLING_PAYMENT_FAILED = "billing_payment_failed"
    BILLING_TRANSITION_IGNORED = "billing_transition_ignored"
    BILLING_WEBHOOK_REJECTED = "billing_webhook_rejected"


class AuditLogger:
    """Append-only writer for AuditEvent rows"""

    def __init__(self, session_factory: async_sessionmaker, timeout: float = AUDIT_WRITE_TIMEOUT_SECONDS):
        self.session_factory = session_factory
        self.timeout = timeout

    async def append(
        self,
        event_type: Union[AuditEventType, str],
        *,
        tenant_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        actor_role: Optional[str] = None,
        entity_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Record an event. Returns False when the write failed (already logged)."""
        event_name = event_type.value if isinstance(event_type, AuditEventType) else str(event_type)
        try:
            await asyncio.wait_for(
                self._write(event_name, tenant_id, actor_id, actor_role, entity_id, metadata),
                timeout=self.timeout,
            )
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Audit write timed out (ignored): {event_name}", extra={"tenant_id": tenant_id})
        except Exception as e:
            logger.warning(f"Audit write failed (ignored): {event_name}: {e}", extra={"tenant_id": tenant_id})
        return False

    async def _write(
        self,
        event_type: str,
        tenant_id: Optional[str],
        actor_id: Optional[str],
        actor_role: Optional[str],
        entity_id: Optional[str],
        metadata: Optional[Dict[str, Any]],
    ) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(AuditEvent(
                    event_type=event_type,
                    tenant_id=tenant_id,
                    actor_id=actor_id,
                    actor_role=actor_role,
                    entity_id=entity_id,
                    details=metadata or {},
                ))
