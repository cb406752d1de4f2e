"""Celery task: scan open transactions for stuck and unassigned work, per firm."""

from __future__ import annotations

import asyncio

import structlog
from celery import shared_task

logger = structlog.get_logger()


@shared_task(name="tasks.scan_transaction_health")
def scan_transaction_health() -> dict:
    """Log per-firm health flag counts; nothing is written."""

    async def _run() -> dict:
        from itertools import groupby

        from closings.core.config import settings
        from closings.core.database import async_session_factory
        from closings.models.base import utcnow
        from closings.modules.health.monitor import count_by_issue, scan
        from closings.modules.health.service import fetch_open_transactions

        as_of = utcnow()
        async with async_session_factory() as db:
            transactions = await fetch_open_transactions(db)

        transactions.sort(key=lambda t: str(t.law_firm_id))
        totals: dict[str, int] = {}
        firms = 0
        for law_firm_id, group in groupby(transactions, key=lambda t: t.law_firm_id):
            firms += 1
            counts = count_by_issue(scan(list(group), as_of, limit_per_issue=settings.HEALTH_FLAG_LIMIT))
            logger.info(
                "firm_health_scanned",
                law_firm_id=str(law_firm_id),
                **{issue.value: n for issue, n in counts.items()},
            )
            for issue, n in counts.items():
                totals[issue.value] = totals.get(issue.value, 0) + n

        return {"firms_checked": firms, "open_transactions": len(transactions), **totals}

    result = asyncio.run(_run())
    return result
