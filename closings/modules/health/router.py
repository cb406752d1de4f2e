"""Health flags: FastAPI router."""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from closings.auth.dependencies import get_current_user
from closings.core.database import get_db
from closings.modules.health.schemas import HealthScanResponse
from closings.modules.health.service import HealthService
from closings.schemas.auth import CurrentUser

router = APIRouter(prefix="/health-flags", tags=["Health"])


@router.get("", response_model=HealthScanResponse)
async def get_health_flags(
    as_of: datetime | None = Query(default=None),
    law_firm_id: uuid.UUID | None = Query(default=None),
    stuck_new_days: int | None = Query(default=None, ge=0),
    stuck_in_progress_days: int | None = Query(default=None, ge=0),
    limit: int | None = Query(default=None, ge=1, le=500),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> HealthScanResponse:
    """Stuck and unassigned open transactions in the caller's scope."""
    return await HealthService(db, current_user).scan(
        as_of=as_of,
        law_firm_id=law_firm_id,
        stuck_new_days=stuck_new_days,
        stuck_in_progress_days=stuck_in_progress_days,
        limit_per_issue=limit,
    )
