"""
Celery worker for the closings service.

Start worker:    celery -A closings.worker worker --loglevel=info
Start beat:      celery -A closings.worker beat --loglevel=info
Start both:      celery -A closings.worker worker --beat --loglevel=info
"""
from celery import Celery

from closings.core.celery_config import (
    CELERY_QUEUES,
    CELERY_TASK_ANNOTATIONS,
    CELERY_TASK_ROUTES,
)
from closings.core.config import settings
from closings.core.sentry import init_sentry

celery_app = Celery(
    "closings_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.REDIS_URL,
    include=[
        "closings.tasks.workload_reconcile",
        "closings.tasks.health_scan",
    ],
)

init_sentry(
    dsn=settings.SENTRY_DSN,
    environment=settings.SENTRY_ENVIRONMENT,
    release=settings.APP_VERSION,
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,  # 24h
    task_queues=CELERY_QUEUES,
    task_default_queue="default",
    task_routes=CELERY_TASK_ROUTES,
    task_annotations=CELERY_TASK_ANNOTATIONS,
)

celery_app.conf.beat_schedule = {
    # ── Workload counter reconciliation ──────────────────────────────────────
    "reconcile-workloads": {
        "task": "tasks.reconcile_workloads",
        "schedule": settings.WORKLOAD_RECONCILE_INTERVAL_SECONDS,
    },
    # ── Stuck / unassigned transaction scan ──────────────────────────────────
    "scan-transaction-health": {
        "task": "tasks.scan_transaction_health",
        "schedule": settings.HEALTH_SCAN_INTERVAL_SECONDS,
    },
}
