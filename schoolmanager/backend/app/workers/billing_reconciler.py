# backend/app/workers/billing_reconciler.py
"""
Background recovery for payments stuck in ``pending``.

A checkout whose webhook never arrives (or arrived while we were down) is
only settled by a verify-by-pull. This job finds pending payments older than
PAYMENT_RECONCILE_AFTER_MINUTES and pulls each one through
``BillingGateway.verify_by_pull``, the same path a tenant admin would use.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional

from celery import Task
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.audit_log import AuditLogger
from app.core.config import settings
from app.core.exceptions import AppError
from app.core.logging import logger
from app.db.repositories.payment_repository import PaymentRepository
from app.services.billing_gateway import BillingGateway
from app.services.paystack_client import PaystackClient
from app.workers.celery_app import celery_app


async def reconcile_pending_payments(
    session_factory: async_sessionmaker,
    gateway: BillingGateway,
    older_than: Optional[timedelta] = None,
    limit: int = 100,
) -> Dict[str, int]:
    """
    Re-verify stale pending payments

    Returns:
        Count of references examined, settled, still pending
        and failed to verify
    """
    older_than = older_than or timedelta(minutes=settings.PAYMENT_RECONCILE_AFTER_MINUTES)
    cutoff = datetime.utcnow() - older_than

    async with session_factory() as session:
        references = await PaymentRepository(session).list_stale_pending(cutoff, limit=limit)

    summary = {"examined": len(references), "settled": 0, "pending": 0, "errors": 0}
    for reference in references:
        try:
            status = await gateway.verify_by_pull(reference)
        except AppError as e:
            logger.warning(f"Reconcile failed for {reference}: {e.message}", extra={"reference": reference})
            summary["errors"] += 1
            continue
        except Exception:
            logger.exception(f"Unexpected error reconciling {reference}", extra={"reference": reference})
            summary["errors"] += 1
            continue

        if status == "pending":
            summary["pending"] += 1
        else:
            summary["settled"] += 1

    logger.info(
        f"Payment reconciliation: {summary['examined']} examined, "
        f"{summary['settled']} settled, {summary['errors']} errors"
    )
    return summary


class ReconcileTask(Task):
    """Task class that logs failures"""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Reconcile task {task_id} failed: {exc}", exc_info=True)


@celery_app.task(bind=True, base=ReconcileTask, name="reconcile_pending_payments")
def reconcile_pending_payments_task(self, limit: int = 100):
    """Celery entry point; runs the async reconciler on its own loop"""
    import asyncio
    return asyncio.run(_run(limit))


async def _run(limit: int) -> Dict[str, int]:
    from app.db.database import close_db, get_session_factory

    session_factory = get_session_factory()
    gateway = BillingGateway(session_factory, PaystackClient(), AuditLogger(session_factory))
    try:
        return await reconcile_pending_payments(session_factory, gateway, limit=limit)
    finally:
        # pooled connections are bound to this run's event loop
        await close_db()
