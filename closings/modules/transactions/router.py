"""Transactions: FastAPI router."""

import uuid

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from closings.auth.dependencies import get_current_user
from closings.core.database import get_db
from closings.models.enums import TransactionStatus
from closings.modules.staff.service import AssignmentTracker
from closings.modules.transactions.schemas import (
    ActivityResponse,
    AssignmentUpdate,
    ScheduleUpdate,
    StatusUpdate,
    TitleStatusUpdate,
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
)
from closings.modules.transactions.service import TransactionService
from closings.schemas.auth import CurrentUser

logger = structlog.get_logger()

router = APIRouter(prefix="/transactions", tags=["Transactions"])


def _svc(db: AsyncSession, current_user: CurrentUser) -> TransactionService:
    return TransactionService(db, current_user)


@router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    body: TransactionCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    """Open a new closing order against a law firm."""
    svc = _svc(db, current_user)
    txn = await svc.create_transaction(body)
    await svc.commit()
    return TransactionResponse.model_validate(txn)


@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    law_firm_id: uuid.UUID | None = Query(default=None),
    status: TransactionStatus | None = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionListResponse:
    """List the transactions visible to the caller, newest first."""
    items, total = await _svc(db, current_user).list_transactions(
        law_firm_id=law_firm_id, status=status, skip=skip, limit=limit
    )
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in items],
        total=total,
    )


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    txn = await _svc(db, current_user).get_transaction(transaction_id)
    return TransactionResponse.model_validate(txn)


# ── Lifecycle mutations ────────────────────────────────────────────────────────


@router.put("/{transaction_id}/status", response_model=TransactionResponse)
async def set_status(
    transaction_id: uuid.UUID,
    body: StatusUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    """Change the primary status; completed_at follows it."""
    svc = _svc(db, current_user)
    txn = await svc.set_status(transaction_id, body.status)
    await svc.commit()
    return TransactionResponse.model_validate(txn)


@router.put("/{transaction_id}/title-status", response_model=TransactionResponse)
async def set_title_status(
    transaction_id: uuid.UUID,
    body: TitleStatusUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    svc = _svc(db, current_user)
    txn = await svc.set_title_status(transaction_id, body.title_status)
    await svc.commit()
    return TransactionResponse.model_validate(txn)


@router.put("/{transaction_id}/schedule", response_model=TransactionResponse)
async def update_schedule(
    transaction_id: uuid.UUID,
    body: ScheduleUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    """Update closing date, time or location; need flags are re-derived."""
    svc = _svc(db, current_user)
    txn = await svc.update_schedule(transaction_id, body)
    await svc.commit()
    return TransactionResponse.model_validate(txn)


@router.put("/{transaction_id}/assignment", response_model=TransactionResponse)
async def assign(
    transaction_id: uuid.UUID,
    body: AssignmentUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    """Assign a staff member, or unassign with ``staff_id: null``."""
    tracker = AssignmentTracker(db, current_user)
    txn = await tracker.assign(transaction_id, body.staff_id)
    await tracker.commit()
    return TransactionResponse.model_validate(txn)


@router.get("/{transaction_id}/activity", response_model=list[ActivityResponse])
async def list_activity(
    transaction_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[ActivityResponse]:
    activity = await _svc(db, current_user).list_activity(transaction_id)
    return [ActivityResponse.model_validate(a) for a in activity]
