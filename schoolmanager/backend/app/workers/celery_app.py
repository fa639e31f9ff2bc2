# backend/app/workers/celery_app.py
from celery import Celery

from app.core.config import settings

celery_app = Celery(
    "schoolmanager",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["app.workers.billing_reconciler"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "reconcile-pending-payments": {
            "task": "reconcile_pending_payments",
            "schedule": 15 * 60.0,
        },
    },
)
