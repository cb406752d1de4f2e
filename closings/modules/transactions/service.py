"""Transactions: async service layer.

Owns the status engine (``set_status``), the independent title sub-status
tracker (``set_title_status``), order intake and scheduling. Every mutation
appends an activity row and queues a domain event; events go out from
``commit()`` once the write is durable.
"""

import uuid
from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from closings.auth.rbac import Action, Resource, authorize
from closings.core.errors import NotFoundError, translate_store_errors
from closings.core.events import (
    DomainEvent,
    ScheduleChanged,
    TitleStatusChanged,
    TransactionCreated,
    TransactionStatusChanged,
    commit_and_publish,
)
from closings.middleware.tenant import scope_to_actor
from closings.models.base import utcnow
from closings.models.core import LawFirm
from closings.models.enums import ActivityAction, TitleStatus, TransactionStatus, UserRole
from closings.models.transactions import Transaction, TransactionActivity
from closings.modules.transactions.schemas import ScheduleUpdate, TransactionCreate
from closings.modules.transactions.transitions import (
    completed_at_after,
    derive_need_flags,
    validate_transition,
)
from closings.schemas.auth import CurrentUser

logger = structlog.get_logger()


def generate_order_number() -> str:
    return f"CLS-{uuid.uuid4().hex[:8].upper()}"


class TransactionService:
    def __init__(self, db: AsyncSession, actor: CurrentUser) -> None:
        self.db = db
        self.actor = actor
        self.pending_events: list[DomainEvent] = []

    async def commit(self) -> None:
        await commit_and_publish(self.db, self.pending_events)

    # ── Lookup ─────────────────────────────────────────────────────────────────

    async def _load(self, transaction_id: uuid.UUID) -> Transaction:
        """Fetch by id with no scope applied; raises NotFoundError."""
        with translate_store_errors("load_transaction"):
            txn = await self.db.get(Transaction, transaction_id)
        if txn is None:
            raise NotFoundError(
                "Transaction not found", detail={"transaction_id": str(transaction_id)}
            )
        return txn

    async def get_transaction(self, transaction_id: uuid.UUID) -> Transaction:
        """Fetch one transaction the actor may read; out-of-scope reads look missing."""
        authorize(self.actor, Action.VIEW, Resource.TRANSACTION)
        stmt = scope_to_actor(
            select(Transaction).where(Transaction.id == transaction_id),
            self.actor,
            Transaction,
        )
        with translate_store_errors("get_transaction"):
            result = await self.db.execute(stmt)
        txn = result.scalar_one_or_none()
        if txn is None:
            raise NotFoundError(
                "Transaction not found", detail={"transaction_id": str(transaction_id)}
            )
        return txn

    async def list_transactions(
        self,
        law_firm_id: uuid.UUID | None = None,
        status: TransactionStatus | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[list[Transaction], int]:
        """Role-scoped listing, newest first. Returns (page, total)."""
        authorize(self.actor, Action.VIEW, Resource.TRANSACTION)
        stmt = scope_to_actor(select(Transaction), self.actor, Transaction)
        if law_firm_id is not None:
            stmt = stmt.where(Transaction.law_firm_id == law_firm_id)
        if status is not None:
            stmt = stmt.where(Transaction.status == status)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        with translate_store_errors("list_transactions"):
            total = (await self.db.execute(count_stmt)).scalar_one()
            result = await self.db.execute(
                stmt.order_by(Transaction.created_at.desc()).offset(skip).limit(limit)
            )
        return list(result.scalars().all()), total

    # ── Intake ─────────────────────────────────────────────────────────────────

    async def create_transaction(self, body: TransactionCreate) -> Transaction:
        authorize(self.actor, Action.CREATE, Resource.TRANSACTION)

        with translate_store_errors("load_law_firm"):
            firm = await self.db.get(LawFirm, body.law_firm_id)
        if firm is None or firm.is_disabled:
            raise NotFoundError("Law firm not found", detail={"law_firm_id": str(body.law_firm_id)})

        if self.actor.role == UserRole.CUSTOMER or body.customer_id is None:
            customer_id = self.actor.user_id
        else:
            customer_id = body.customer_id

        fields = body.model_dump(exclude={"customer_id"})
        txn = Transaction(
            order_number=generate_order_number(),
            customer_id=customer_id,
            status=TransactionStatus.NEW,
            title_status=None,
            **fields,
            **derive_need_flags(
                body.estimated_closing_date, body.closing_time, body.closing_location
            ),
        )
        with translate_store_errors("create_transaction"):
            self.db.add(txn)
            await self.db.flush()
            self._record(txn, ActivityAction.CREATED, None, TransactionStatus.NEW.value)
            await self.db.flush()

        self.pending_events.append(
            TransactionCreated(
                law_firm_id=txn.law_firm_id,
                actor_id=self.actor.user_id,
                transaction_id=txn.id,
            )
        )
        logger.info(
            "transaction_created",
            transaction_id=str(txn.id),
            order_number=txn.order_number,
            law_firm_id=str(txn.law_firm_id),
        )
        return txn

    # ── Status engine ──────────────────────────────────────────────────────────

    async def set_status(
        self,
        transaction_id: uuid.UUID,
        new_status: TransactionStatus,
        now: datetime | None = None,
    ) -> Transaction:
        """Move a transaction to ``new_status`` and keep completed_at in step.

        completed_at is set iff the resulting status is ``completed``. Title
        status and workload counters are never touched here.
        """
        txn = await self._load(transaction_id)
        authorize(self.actor, Action.SET_STATUS, Resource.TRANSACTION, txn.law_firm_id)

        previous = txn.status
        validate_transition(previous, new_status)

        completed_at = completed_at_after(new_status, txn.completed_at, now or utcnow())
        if previous == new_status and txn.completed_at == completed_at:
            return txn

        txn.status = new_status
        txn.completed_at = completed_at
        with translate_store_errors("set_status"):
            self._record(txn, ActivityAction.STATUS_CHANGED, previous.value, new_status.value)
            await self.db.flush()

        self.pending_events.append(
            TransactionStatusChanged(
                law_firm_id=txn.law_firm_id,
                actor_id=self.actor.user_id,
                transaction_id=txn.id,
                previous_status=previous,
                new_status=new_status,
                completed_at=completed_at,
            )
        )
        logger.info(
            "transaction_status_changed",
            transaction_id=str(txn.id),
            previous=previous.value,
            new=new_status.value,
        )
        return txn

    # ── Title sub-status ───────────────────────────────────────────────────────

    async def set_title_status(
        self,
        transaction_id: uuid.UUID,
        new_title_status: TitleStatus,
    ) -> Transaction:
        txn = await self._load(transaction_id)
        authorize(self.actor, Action.SET_TITLE_STATUS, Resource.TRANSACTION, txn.law_firm_id)

        previous = txn.title_status
        if previous == new_title_status:
            return txn

        txn.title_status = new_title_status
        with translate_store_errors("set_title_status"):
            self._record(
                txn,
                ActivityAction.TITLE_STATUS_CHANGED,
                previous.value if previous else None,
                new_title_status.value,
            )
            await self.db.flush()

        self.pending_events.append(
            TitleStatusChanged(
                law_firm_id=txn.law_firm_id,
                actor_id=self.actor.user_id,
                transaction_id=txn.id,
                previous_title_status=previous,
                new_title_status=new_title_status,
            )
        )
        logger.info(
            "transaction_title_status_changed",
            transaction_id=str(txn.id),
            previous=previous.value if previous else None,
            new=new_title_status.value,
        )
        return txn

    # ── Scheduling ─────────────────────────────────────────────────────────────

    async def update_schedule(
        self,
        transaction_id: uuid.UUID,
        body: ScheduleUpdate,
    ) -> Transaction:
        txn = await self._load(transaction_id)
        authorize(self.actor, Action.SCHEDULE, Resource.TRANSACTION, txn.law_firm_id)

        changes = body.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(txn, field, value)
        for flag, value in derive_need_flags(
            txn.estimated_closing_date, txn.closing_time, txn.closing_location
        ).items():
            setattr(txn, flag, value)

        with translate_store_errors("update_schedule"):
            self._record(
                txn,
                ActivityAction.SCHEDULE_UPDATED,
                None,
                ", ".join(sorted(changes)) or None,
            )
            await self.db.flush()

        self.pending_events.append(
            ScheduleChanged(
                law_firm_id=txn.law_firm_id,
                actor_id=self.actor.user_id,
                transaction_id=txn.id,
            )
        )
        logger.info(
            "transaction_schedule_updated",
            transaction_id=str(txn.id),
            fields=sorted(changes),
        )
        return txn

    # ── Activity ───────────────────────────────────────────────────────────────

    async def list_activity(self, transaction_id: uuid.UUID) -> list[TransactionActivity]:
        txn = await self.get_transaction(transaction_id)
        with translate_store_errors("list_activity"):
            result = await self.db.execute(
                select(TransactionActivity)
                .where(TransactionActivity.transaction_id == txn.id)
                .order_by(TransactionActivity.created_at.asc())
            )
        return list(result.scalars().all())

    def _record(
        self,
        txn: Transaction,
        action: ActivityAction,
        previous_value: str | None,
        new_value: str | None,
    ) -> None:
        self.db.add(
            TransactionActivity(
                transaction_id=txn.id,
                actor_id=self.actor.user_id,
                action=action,
                previous_value=previous_value,
                new_value=new_value,
            )
        )
