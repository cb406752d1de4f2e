"""Pipeline view and live change stream: FastAPI router."""

import asyncio
import json
import uuid
from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from closings.auth.dependencies import require_permission
from closings.auth.rbac import Action, Resource
from closings.core.config import settings
from closings.core.database import get_db
from closings.core.events import (
    AssignmentChanged,
    DomainEvent,
    TransactionCreated,
    TransactionStatusChanged,
    event_bus,
)
from closings.models.enums import UserRole
from closings.modules.pipeline.schemas import PipelineTab, PipelineView
from closings.modules.pipeline.service import PipelineService
from closings.schemas.auth import CurrentUser

logger = structlog.get_logger()

router = APIRouter(prefix="/pipeline", tags=["Pipeline"])

HEARTBEAT_SECONDS = 30.0

# Events that can change which transactions carry health flags
_HEALTH_EVENTS: tuple[type[DomainEvent], ...] = (
    TransactionCreated,
    TransactionStatusChanged,
    AssignmentChanged,
)


def invalidations_for(event: DomainEvent) -> list[str]:
    """Which dashboard views must re-derive after ``event``."""
    kinds = ["pipeline.invalidated"]
    if isinstance(event, _HEALTH_EVENTS):
        kinds.insert(0, "health.invalidated")
    return kinds


def redacts_ids(actor: CurrentUser) -> bool:
    """Attorneys read only their own assignments; their frames carry no ids."""
    return actor.role == UserRole.ATTORNEY


def format_sse(kind: str, event: DomainEvent, redacted: bool = False) -> str:
    """One SSE frame. Redacted frames carry no record ids."""
    if redacted:
        payload = {
            "type": kind,
            "event": event.name,
            "occurred_at": event.occurred_at.isoformat(),
        }
    else:
        payload = {"type": kind, "event": event.name, **event.model_dump(mode="json")}
    return f"data: {json.dumps(payload)}\n\n"


@router.get("", response_model=PipelineView)
async def get_pipeline(
    search: str | None = Query(default=None, max_length=200),
    tab: PipelineTab = Query(default=PipelineTab.ALL),
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None),
    law_firm_id: uuid.UUID | None = Query(default=None),
    as_of: datetime | None = Query(default=None),
    current_user: CurrentUser = Depends(require_permission(Action.VIEW, Resource.PIPELINE)),
    db: AsyncSession = Depends(get_db),
) -> PipelineView:
    """Filtered, paginated pipeline with counts, workload and health flags."""
    if page_size is not None and page_size not in settings.PIPELINE_PAGE_SIZES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"page_size must be one of {settings.PIPELINE_PAGE_SIZES}",
        )
    return await PipelineService(db, current_user).view(
        search=search,
        tab=tab,
        page=page,
        page_size=page_size,
        law_firm_id=law_firm_id,
        as_of=as_of,
    )


@router.get("/stream")
async def pipeline_stream(
    law_firm_id: uuid.UUID | None = Query(default=None),
    current_user: CurrentUser = Depends(require_permission(Action.VIEW, Resource.PIPELINE)),
    db: AsyncSession = Depends(get_db),
):
    """SSE stream telling dashboards when to re-fetch."""
    firm_id = PipelineService(db, current_user).firm_scope(law_firm_id)
    redacted = redacts_ids(current_user)

    async def event_generator():
        queue = event_bus.connect(firm_id)
        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_SECONDS)
                    for kind in invalidations_for(event):
                        yield format_sse(kind, event, redacted)
                except asyncio.TimeoutError:
                    yield f"data: {json.dumps({'type': 'heartbeat'})}\n\n"
        finally:
            event_bus.disconnect(firm_id, queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
