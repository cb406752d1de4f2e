"""Celery task: rebuild attorney workload counters from open assignments."""

from __future__ import annotations

import asyncio

from celery import shared_task


@shared_task(name="tasks.reconcile_workloads")
def reconcile_workloads() -> dict:
    """Recount open assigned transactions per staff member and fix drifted counters."""

    async def _run() -> dict:
        from closings.core.database import async_session_factory
        from closings.core.events import DomainEvent, commit_and_publish
        from closings.modules.staff.service import reconcile_workloads as reconcile

        async with async_session_factory() as db:
            pending: list[DomainEvent] = []
            result = await reconcile(db, pending_events=pending)
            await commit_and_publish(db, pending)
            return {"checked": result.checked, "corrected": len(result.corrections)}

    result = asyncio.run(_run())
    return result
