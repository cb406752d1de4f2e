"""Staff, assignment tracking and workload counters: async service layer.

``current_assignments`` is an advisory cache: ``assign`` moves it by SQL-side
increments/decrements in the same database transaction as the assignment
write, and ``reconcile_workloads`` rebuilds it by counting open assigned
transactions.
"""

import uuid

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from closings.auth.rbac import Action, Resource, authorize
from closings.core.errors import (
    AuthorizationError,
    InvalidAssignmentError,
    NotFoundError,
    translate_store_errors,
)
from closings.core.events import (
    AssignmentChanged,
    DomainEvent,
    StaffChanged,
    WorkloadReconciled,
    commit_and_publish,
)
from closings.models.base import utcnow
from closings.models.core import Staff
from closings.models.enums import OPEN_STATUSES, ActivityAction, UserRole
from closings.models.transactions import Transaction, TransactionActivity
from closings.modules.staff.schemas import ReconcileResponse, WorkloadEntry, WorkloadResponse
from closings.schemas.auth import CurrentUser

logger = structlog.get_logger()

DEFAULT_DISABLED_REASON = "Disabled by admin"


def check_assignable(staff: Staff, txn: Transaction) -> None:
    """Raise InvalidAssignmentError unless ``staff`` may take ``txn``."""
    detail = {"staff_id": str(staff.id), "transaction_id": str(txn.id)}
    if staff.law_firm_id != txn.law_firm_id:
        raise InvalidAssignmentError(
            "Staff member belongs to a different law firm than the transaction", detail=detail
        )
    if not staff.is_active:
        raise InvalidAssignmentError("Staff member is inactive", detail=detail)
    if staff.is_disabled:
        raise InvalidAssignmentError("Staff member is disabled", detail=detail)
    if not staff.can_be_assigned:
        raise InvalidAssignmentError("Staff member is not accepting assignments", detail=detail)


def workload_entry(staff: Staff) -> WorkloadEntry:
    return WorkloadEntry(
        staff_id=staff.id,
        full_name=staff.full_name,
        current_assignments=staff.current_assignments,
        max_assignments=staff.max_assignments,
        over_capacity=(
            staff.max_assignments is not None
            and staff.current_assignments > staff.max_assignments
        ),
        is_assignable=staff.is_assignable,
    )


_decrement_floor_zero = case(
    (Staff.current_assignments > 0, Staff.current_assignments - 1),
    else_=0,
)


# ── Reconciliation ─────────────────────────────────────────────────────────────


async def count_open_assignments(
    db: AsyncSession,
    staff_ids: list[uuid.UUID] | None = None,
) -> dict[uuid.UUID, int]:
    """Count open (new / in_progress) transactions per assigned staff member."""
    stmt = (
        select(Transaction.assigned_attorney_id, func.count(Transaction.id))
        .where(
            Transaction.assigned_attorney_id.is_not(None),
            Transaction.status.in_(list(OPEN_STATUSES)),
        )
        .group_by(Transaction.assigned_attorney_id)
    )
    if staff_ids is not None:
        stmt = stmt.where(Transaction.assigned_attorney_id.in_(staff_ids))
    with translate_store_errors("count_open_assignments"):
        result = await db.execute(stmt)
    return {staff_id: count for staff_id, count in result.all()}


async def reconcile_workloads(
    db: AsyncSession,
    law_firm_id: uuid.UUID | None = None,
    pending_events: list[DomainEvent] | None = None,
    actor_id: uuid.UUID | None = None,
) -> ReconcileResponse:
    """Rewrite every drifted ``current_assignments`` counter from a fresh count.

    Scoped to one firm when ``law_firm_id`` is given. Flushes but does not
    commit. One WorkloadReconciled event per firm with corrections is
    appended to ``pending_events``.
    """
    stmt = select(Staff).execution_options(populate_existing=True)
    if law_firm_id is not None:
        stmt = stmt.where(Staff.law_firm_id == law_firm_id)
    with translate_store_errors("load_staff"):
        staff_rows = list((await db.execute(stmt)).scalars().all())

    counts = await count_open_assignments(db, [s.id for s in staff_rows])

    corrections: dict[str, int] = {}
    by_firm: dict[uuid.UUID, dict[str, int]] = {}
    for staff in staff_rows:
        expected = counts.get(staff.id, 0)
        if staff.current_assignments == expected:
            continue
        logger.warning(
            "workload_counter_corrected",
            staff_id=str(staff.id),
            law_firm_id=str(staff.law_firm_id),
            previous=staff.current_assignments,
            corrected=expected,
        )
        staff.current_assignments = expected
        corrections[str(staff.id)] = expected
        by_firm.setdefault(staff.law_firm_id, {})[str(staff.id)] = expected

    with translate_store_errors("reconcile_workloads"):
        await db.flush()

    if pending_events is not None:
        for firm_id, firm_corrections in by_firm.items():
            pending_events.append(
                WorkloadReconciled(
                    law_firm_id=firm_id,
                    actor_id=actor_id,
                    corrections=firm_corrections,
                )
            )

    logger.info(
        "workloads_reconciled",
        law_firm_id=str(law_firm_id) if law_firm_id else "all",
        checked=len(staff_rows),
        corrected=len(corrections),
    )
    return ReconcileResponse(checked=len(staff_rows), corrections=corrections)


# ── Assignment ─────────────────────────────────────────────────────────────────


class AssignmentTracker:
    def __init__(self, db: AsyncSession, actor: CurrentUser) -> None:
        self.db = db
        self.actor = actor
        self.pending_events: list[DomainEvent] = []

    async def commit(self) -> None:
        await commit_and_publish(self.db, self.pending_events)

    async def assign(
        self,
        transaction_id: uuid.UUID,
        staff_id: uuid.UUID | None,
    ) -> Transaction:
        """Point a transaction at ``staff_id`` (or nobody) and move both counters.

        Reassigning to the current assignee is a no-op. Counters only count
        open transactions, so assignments on completed or cancelled orders
        leave them alone.
        """
        with translate_store_errors("load_transaction"):
            txn = await self.db.get(Transaction, transaction_id)
        if txn is None:
            raise NotFoundError(
                "Transaction not found", detail={"transaction_id": str(transaction_id)}
            )
        authorize(self.actor, Action.ASSIGN, Resource.TRANSACTION, txn.law_firm_id)

        previous_id = txn.assigned_attorney_id
        if previous_id == staff_id:
            return txn

        if staff_id is not None:
            with translate_store_errors("load_staff"):
                staff = await self.db.get(Staff, staff_id)
            if staff is None:
                raise NotFoundError("Staff member not found", detail={"staff_id": str(staff_id)})
            check_assignable(staff, txn)

        moves_counters = txn.status in OPEN_STATUSES
        txn.assigned_attorney_id = staff_id
        with translate_store_errors("assign"):
            if moves_counters and previous_id is not None:
                await self.db.execute(
                    update(Staff)
                    .where(Staff.id == previous_id)
                    .values(current_assignments=_decrement_floor_zero)
                    .execution_options(synchronize_session=False)
                )
            if moves_counters and staff_id is not None:
                await self.db.execute(
                    update(Staff)
                    .where(Staff.id == staff_id)
                    .values(current_assignments=Staff.current_assignments + 1)
                    .execution_options(synchronize_session=False)
                )
            self.db.add(
                TransactionActivity(
                    transaction_id=txn.id,
                    actor_id=self.actor.user_id,
                    action=ActivityAction.ASSIGNED if staff_id else ActivityAction.UNASSIGNED,
                    previous_value=str(previous_id) if previous_id else None,
                    new_value=str(staff_id) if staff_id else None,
                )
            )
            await self.db.flush()
            for touched in (previous_id, staff_id):
                if touched is not None:
                    await self.db.get(Staff, touched, populate_existing=True)

        self.pending_events.append(
            AssignmentChanged(
                law_firm_id=txn.law_firm_id,
                actor_id=self.actor.user_id,
                transaction_id=txn.id,
                previous_staff_id=previous_id,
                new_staff_id=staff_id,
            )
        )
        logger.info(
            "transaction_assignment_changed",
            transaction_id=str(txn.id),
            previous_staff_id=str(previous_id) if previous_id else None,
            new_staff_id=str(staff_id) if staff_id else None,
        )
        return txn


# ── Roster ─────────────────────────────────────────────────────────────────────


class StaffService:
    def __init__(self, db: AsyncSession, actor: CurrentUser) -> None:
        self.db = db
        self.actor = actor
        self.pending_events: list[DomainEvent] = []

    async def commit(self) -> None:
        await commit_and_publish(self.db, self.pending_events)

    def _firm_scope(self, law_firm_id: uuid.UUID | None) -> uuid.UUID | None:
        """Resolve which firm a listing covers; admins may leave it open."""
        if self.actor.role == UserRole.ADMIN:
            return law_firm_id
        if self.actor.law_firm_id is None:
            raise AuthorizationError("No law firm associated with this account")
        if law_firm_id is not None and law_firm_id != self.actor.law_firm_id:
            raise NotFoundError("Law firm not found", detail={"law_firm_id": str(law_firm_id)})
        return self.actor.law_firm_id

    async def _load(self, staff_id: uuid.UUID) -> Staff:
        with translate_store_errors("load_staff"):
            staff = await self.db.get(Staff, staff_id)
        if staff is None:
            raise NotFoundError("Staff member not found", detail={"staff_id": str(staff_id)})
        return staff

    async def list_staff(
        self,
        law_firm_id: uuid.UUID | None = None,
        active_only: bool = False,
    ) -> list[Staff]:
        authorize(self.actor, Action.VIEW, Resource.STAFF)
        firm_id = self._firm_scope(law_firm_id)
        stmt = (
            select(Staff)
            .order_by(Staff.full_name.asc())
            .execution_options(populate_existing=True)
        )
        if firm_id is not None:
            stmt = stmt.where(Staff.law_firm_id == firm_id)
        if active_only:
            stmt = stmt.where(Staff.is_active.is_(True), Staff.is_disabled.is_(False))
        with translate_store_errors("list_staff"):
            result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def set_disabled(
        self,
        staff_id: uuid.UUID,
        disabled: bool,
        reason: str | None = None,
    ) -> Staff:
        """Administrative lock; independent of ``is_active``. Admin only."""
        authorize(self.actor, Action.DISABLE, Resource.STAFF)
        staff = await self._load(staff_id)

        staff.is_disabled = disabled
        staff.disabled_at = utcnow() if disabled else None
        staff.disabled_reason = (reason or DEFAULT_DISABLED_REASON) if disabled else None
        with translate_store_errors("set_staff_disabled"):
            await self.db.flush()

        self.pending_events.append(
            StaffChanged(law_firm_id=staff.law_firm_id, actor_id=self.actor.user_id, staff_id=staff.id)
        )
        logger.info("staff_disabled_changed", staff_id=str(staff.id), is_disabled=disabled)
        return staff

    async def set_active(self, staff_id: uuid.UUID, active: bool) -> Staff:
        staff = await self._load(staff_id)
        authorize(self.actor, Action.ACTIVATE, Resource.STAFF, staff.law_firm_id)

        staff.is_active = active
        with translate_store_errors("set_staff_active"):
            await self.db.flush()

        self.pending_events.append(
            StaffChanged(law_firm_id=staff.law_firm_id, actor_id=self.actor.user_id, staff_id=staff.id)
        )
        logger.info("staff_active_changed", staff_id=str(staff.id), is_active=active)
        return staff

    # ── Workload ───────────────────────────────────────────────────────────────

    async def workload(self, law_firm_id: uuid.UUID | None = None) -> WorkloadResponse:
        authorize(self.actor, Action.VIEW, Resource.WORKLOAD)
        firm_id = self._firm_scope(law_firm_id)
        stmt = (
            select(Staff)
            .order_by(Staff.current_assignments.asc(), Staff.full_name.asc())
            .execution_options(populate_existing=True)
        )
        if firm_id is not None:
            stmt = stmt.where(Staff.law_firm_id == firm_id)
        with translate_store_errors("workload"):
            staff_rows = list((await self.db.execute(stmt)).scalars().all())

        entries = [workload_entry(s) for s in staff_rows]
        return WorkloadResponse(
            law_firm_id=firm_id,
            entries=entries,
            total_assignments=sum(e.current_assignments for e in entries),
        )

    async def reconcile(self, law_firm_id: uuid.UUID | None = None) -> ReconcileResponse:
        firm_id = self._firm_scope(law_firm_id)
        authorize(self.actor, Action.RECONCILE, Resource.WORKLOAD, firm_id)
        return await reconcile_workloads(
            self.db,
            law_firm_id=firm_id,
            pending_events=self.pending_events,
            actor_id=self.actor.user_id,
        )
