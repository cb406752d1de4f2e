"""Celery queue topology: exchanges, queues, task routing, and per-task limits."""

from kombu import Exchange, Queue  # type: ignore[import-untyped]

# ── Exchanges ─────────────────────────────────────────────────────────────────

default_exchange = Exchange("default", type="direct")

# ── Queues ────────────────────────────────────────────────────────────────────

CELERY_QUEUES = (
    # Default: short read-side scans
    Queue("default", default_exchange, routing_key="default"),
    # Maintenance: counter rebuilds that write to every staff row of a firm
    Queue("maintenance", default_exchange, routing_key="maintenance"),
)

# ── Task routing ──────────────────────────────────────────────────────────────

CELERY_TASK_ROUTES: dict[str, dict] = {
    "tasks.scan_transaction_health":   {"queue": "default"},
    "tasks.reconcile_workloads":       {"queue": "maintenance"},
}

# ── Per-task rate limits and time limits ──────────────────────────────────────

CELERY_TASK_ANNOTATIONS: dict[str, dict] = {
    "tasks.scan_transaction_health": {
        "time_limit": 300,
        "soft_time_limit": 270,
    },
    "tasks.reconcile_workloads": {
        "time_limit": 600,
        "soft_time_limit": 540,
    },
}
