"""Health flags: async read-side service.

Fetches the open transactions in the caller's scope and runs the pure
classifier over them. Store failures degrade to an empty, flagged result.
"""

import uuid
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from closings.auth.rbac import Action, Resource, authorize
from closings.core.config import settings
from closings.core.errors import StoreUnavailableError, translate_store_errors
from closings.middleware.tenant import scope_to_actor
from closings.models.base import utcnow
from closings.models.enums import OPEN_STATUSES
from closings.models.transactions import Transaction
from closings.modules.health.monitor import count_by_issue, scan
from closings.modules.health.schemas import HealthScanResponse
from closings.schemas.auth import CurrentUser

logger = structlog.get_logger()


async def fetch_open_transactions(
    db: AsyncSession,
    actor: CurrentUser | None = None,
    law_firm_id: uuid.UUID | None = None,
) -> list[Transaction]:
    """Open transactions, scoped to the actor when one is given."""
    stmt = select(Transaction).where(Transaction.status.in_(list(OPEN_STATUSES)))
    if actor is not None:
        stmt = scope_to_actor(stmt, actor, Transaction)
    if law_firm_id is not None:
        stmt = stmt.where(Transaction.law_firm_id == law_firm_id)
    with translate_store_errors("fetch_open_transactions"):
        result = await db.execute(stmt.order_by(Transaction.created_at.asc()))
    return list(result.scalars().all())


class HealthService:
    def __init__(self, db: AsyncSession, actor: CurrentUser) -> None:
        self.db = db
        self.actor = actor

    async def scan(
        self,
        as_of: datetime | None = None,
        law_firm_id: uuid.UUID | None = None,
        stuck_new_days: int | None = None,
        stuck_in_progress_days: int | None = None,
        limit_per_issue: int | None = None,
    ) -> HealthScanResponse:
        authorize(self.actor, Action.VIEW, Resource.HEALTH)
        as_of = as_of or utcnow()
        if limit_per_issue is None:
            limit_per_issue = settings.HEALTH_FLAG_LIMIT

        try:
            transactions = await fetch_open_transactions(self.db, self.actor, law_firm_id)
        except StoreUnavailableError as exc:
            logger.warning("health_scan_degraded", error=exc.message)
            return HealthScanResponse(
                as_of=as_of,
                flags=[],
                counts=count_by_issue([]),
                degraded=True,
                error=exc.message,
            )

        flags = scan(
            transactions,
            as_of,
            stuck_new_days=stuck_new_days,
            stuck_in_progress_days=stuck_in_progress_days,
            limit_per_issue=limit_per_issue,
        )
        counts = count_by_issue(flags)
        logger.info(
            "health_scan_completed",
            scanned=len(transactions),
            flags=len(flags),
            **{issue.value: n for issue, n in counts.items()},
        )
        return HealthScanResponse(as_of=as_of, flags=flags, counts=counts)
