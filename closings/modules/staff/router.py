"""Staff roster & workload: FastAPI router."""

import uuid

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from closings.auth.dependencies import get_current_user
from closings.core.database import get_db
from closings.modules.staff.schemas import (
    ReconcileResponse,
    StaffActiveUpdate,
    StaffDisabledUpdate,
    StaffResponse,
    WorkloadResponse,
)
from closings.modules.staff.service import StaffService
from closings.schemas.auth import CurrentUser

logger = structlog.get_logger()

router = APIRouter(prefix="/staff", tags=["Staff"])


def _svc(db: AsyncSession, current_user: CurrentUser) -> StaffService:
    return StaffService(db, current_user)


@router.get("", response_model=list[StaffResponse])
async def list_staff(
    law_firm_id: uuid.UUID | None = Query(default=None),
    active_only: bool = Query(default=False),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[StaffResponse]:
    """Staff roster for a firm (admins may omit the firm)."""
    staff = await _svc(db, current_user).list_staff(law_firm_id, active_only=active_only)
    return [StaffResponse.model_validate(s) for s in staff]


# ── Workload ───────────────────────────────────────────────────────────────────


@router.get("/workload", response_model=WorkloadResponse)
async def get_workload(
    law_firm_id: uuid.UUID | None = Query(default=None),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> WorkloadResponse:
    return await _svc(db, current_user).workload(law_firm_id)


@router.post("/workload/reconcile", response_model=ReconcileResponse)
async def reconcile_workload(
    law_firm_id: uuid.UUID | None = Query(default=None),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ReconcileResponse:
    """Recount open assignments and rewrite drifted counters."""
    svc = _svc(db, current_user)
    result = await svc.reconcile(law_firm_id)
    await svc.commit()
    return result


# ── Administration ─────────────────────────────────────────────────────────────


@router.put("/{staff_id}/disabled", response_model=StaffResponse)
async def set_staff_disabled(
    staff_id: uuid.UUID,
    body: StaffDisabledUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> StaffResponse:
    svc = _svc(db, current_user)
    staff = await svc.set_disabled(staff_id, body.is_disabled, body.reason)
    await svc.commit()
    return StaffResponse.model_validate(staff)


@router.put("/{staff_id}/active", response_model=StaffResponse)
async def set_staff_active(
    staff_id: uuid.UUID,
    body: StaffActiveUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> StaffResponse:
    svc = _svc(db, current_user)
    staff = await svc.set_active(staff_id, body.is_active)
    await svc.commit()
    return StaffResponse.model_validate(staff)
