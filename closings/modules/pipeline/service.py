"""Pipeline view: async composition of transactions, stats, workload and health flags."""

import uuid
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from closings.auth.rbac import Action, Resource, authorize, check_permission
from closings.core.config import settings
from closings.core.errors import (
    AuthorizationError,
    NotFoundError,
    StoreUnavailableError,
    translate_store_errors,
)
from closings.middleware.tenant import scope_to_actor
from closings.models.base import utcnow
from closings.models.core import Staff
from closings.models.enums import UserRole
from closings.models.transactions import Transaction
from closings.modules.health.monitor import scan
from closings.modules.pipeline.aggregate import filter_transactions, paginate, pipeline_stats
from closings.modules.pipeline.schemas import PipelinePage, PipelineTab, PipelineView
from closings.modules.staff.service import workload_entry
from closings.modules.transactions.schemas import TransactionResponse
from closings.schemas.auth import CurrentUser

logger = structlog.get_logger()


class PipelineService:
    def __init__(self, db: AsyncSession, actor: CurrentUser) -> None:
        self.db = db
        self.actor = actor

    def firm_scope(self, law_firm_id: uuid.UUID | None) -> uuid.UUID | None:
        """Admins may pick any firm (or none); everyone else is pinned to their own."""
        if self.actor.role == UserRole.ADMIN:
            return law_firm_id
        if self.actor.law_firm_id is None:
            raise AuthorizationError("No law firm associated with this account")
        if law_firm_id is not None and law_firm_id != self.actor.law_firm_id:
            raise NotFoundError("Law firm not found", detail={"law_firm_id": str(law_firm_id)})
        return self.actor.law_firm_id

    async def _fetch(self, law_firm_id: uuid.UUID | None) -> tuple[list[Transaction], list[Staff]]:
        stmt = scope_to_actor(select(Transaction), self.actor, Transaction)
        if law_firm_id is not None:
            stmt = stmt.where(Transaction.law_firm_id == law_firm_id)

        staff: list[Staff] = []
        with translate_store_errors("pipeline_fetch"):
            result = await self.db.execute(stmt.order_by(Transaction.created_at.desc()))
            transactions = list(result.scalars().all())
            if check_permission(self.actor.role, Action.VIEW, Resource.WORKLOAD):
                staff_stmt = (
                    select(Staff)
                    .order_by(Staff.current_assignments.asc(), Staff.full_name.asc())
                    .execution_options(populate_existing=True)
                )
                if law_firm_id is not None:
                    staff_stmt = staff_stmt.where(Staff.law_firm_id == law_firm_id)
                staff = list((await self.db.execute(staff_stmt)).scalars().all())
        return transactions, staff

    async def view(
        self,
        search: str | None = None,
        tab: PipelineTab = PipelineTab.ALL,
        page: int = 1,
        page_size: int | None = None,
        law_firm_id: uuid.UUID | None = None,
        as_of: datetime | None = None,
    ) -> PipelineView:
        authorize(self.actor, Action.VIEW, Resource.PIPELINE)
        firm_id = self.firm_scope(law_firm_id)
        page_size = page_size or settings.PIPELINE_DEFAULT_PAGE_SIZE
        as_of = as_of or utcnow()

        try:
            transactions, staff = await self._fetch(firm_id)
        except StoreUnavailableError as exc:
            logger.warning("pipeline_view_degraded", error=exc.message)
            return self._empty(as_of, firm_id, tab, search, page_size, exc.message)

        filtered = filter_transactions(transactions, search=search, tab=tab)
        window, page, total_pages = paginate(filtered, page, page_size)

        return PipelineView(
            as_of=as_of,
            law_firm_id=firm_id,
            tab=tab,
            search=search,
            page=PipelinePage(
                items=[TransactionResponse.model_validate(t) for t in window],
                page=page,
                page_size=page_size,
                total=len(filtered),
                total_pages=total_pages,
            ),
            stats=pipeline_stats(
                transactions,
                as_of,
                settings.PIPELINE_READY_TO_CLOSE_DAYS,
                settings.PIPELINE_RECENTLY_CLOSED_DAYS,
            ),
            workload=[workload_entry(s) for s in staff],
            health_flags=scan(transactions, as_of, limit_per_issue=settings.HEALTH_FLAG_LIMIT),
        )

    def _empty(
        self,
        as_of: datetime,
        firm_id: uuid.UUID | None,
        tab: PipelineTab,
        search: str | None,
        page_size: int,
        error: str,
    ) -> PipelineView:
        return PipelineView(
            as_of=as_of,
            law_firm_id=firm_id,
            tab=tab,
            search=search,
            page=PipelinePage(items=[], page=1, page_size=page_size, total=0, total_pages=1),
            stats=pipeline_stats([], as_of, 0, 0),
            workload=[],
            health_flags=[],
            degraded=True,
            error=error,
        )
