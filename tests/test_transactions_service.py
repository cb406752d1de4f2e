"""Tests for the status engine, title tracker, intake and scheduling."""

import re
import uuid
from datetime import date
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from closings.core.errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    StoreUnavailableError,
)
from closings.core.events import TransactionCreated, TransactionStatusChanged, event_bus
from closings.models.enums import ActivityAction, TitleStatus, TransactionStatus
from closings.modules.transactions import transitions
from closings.modules.transactions.schemas import ScheduleUpdate, TransactionCreate
from closings.modules.transactions.service import TransactionService

from conftest import ADMIN, ATTORNEY, CUSTOMER, FIRM_ID, OTHER_PRINCIPAL, PRINCIPAL, STAFF_X_ID

pytestmark = pytest.mark.anyio


def _order(**overrides) -> TransactionCreate:
    values = {
        "law_firm_id": FIRM_ID,
        "customer_name": "Jordan Lee",
        "property_street": "12 Harbor Way",
        "property_city": "Portland",
        "property_state": "ME",
        "property_zip": "04101",
    }
    values.update(overrides)
    return TransactionCreate(**values)


def _assert_t1(txn) -> None:
    assert (txn.completed_at is not None) == (txn.status == TransactionStatus.COMPLETED)


class TestCreateTransaction:
    async def test_customer_opens_order(self, db, firm):
        svc = TransactionService(db, CUSTOMER)
        txn = await svc.create_transaction(_order(closing_time="10:00 AM"))

        assert re.fullmatch(r"CLS-[0-9A-F]{8}", txn.order_number)
        assert txn.status == TransactionStatus.NEW
        assert txn.title_status is None
        assert txn.effective_title_status == TitleStatus.UNASSIGNED
        assert txn.customer_id == CUSTOMER.user_id
        assert txn.completed_at is None
        assert (txn.needs_date, txn.needs_time, txn.needs_location) == (True, False, True)

    async def test_customer_cannot_open_order_for_someone_else(self, db, firm):
        svc = TransactionService(db, CUSTOMER)
        txn = await svc.create_transaction(_order(customer_id=uuid.uuid4()))
        assert txn.customer_id == CUSTOMER.user_id

    async def test_unknown_firm(self, db, firm):
        svc = TransactionService(db, CUSTOMER)
        with pytest.raises(NotFoundError):
            await svc.create_transaction(_order(law_firm_id=uuid.uuid4()))

    async def test_attorney_cannot_open_orders(self, db, firm):
        with pytest.raises(AuthorizationError):
            await TransactionService(db, ATTORNEY).create_transaction(_order())

    async def test_event_published_after_commit(self, db, firm):
        received = []

        async def handler(event):
            received.append(event)

        event_bus.subscribe(TransactionCreated, handler)
        svc = TransactionService(db, CUSTOMER)
        txn = await svc.create_transaction(_order())
        assert received == []

        await svc.commit()
        assert [e.transaction_id for e in received] == [txn.id]
        assert svc.pending_events == []


class TestSetStatus:
    async def test_completed_at_tracks_status_over_any_sequence(self, db, firm, make_transaction):
        txn = await make_transaction()
        svc = TransactionService(db, PRINCIPAL)
        sequence = [
            TransactionStatus.IN_PROGRESS,
            TransactionStatus.COMPLETED,
            TransactionStatus.NEW,
            TransactionStatus.COMPLETED,
            TransactionStatus.CANCELLED,
            TransactionStatus.COMPLETED,
            TransactionStatus.IN_PROGRESS,
        ]
        for target in sequence:
            txn = await svc.set_status(txn.id, target)
            assert txn.status == target
            _assert_t1(txn)

    async def test_idempotent(self, db, firm, make_transaction):
        txn = await make_transaction()
        svc = TransactionService(db, PRINCIPAL)

        once = await svc.set_status(txn.id, TransactionStatus.COMPLETED)
        first_stamp = once.completed_at
        twice = await svc.set_status(txn.id, TransactionStatus.COMPLETED)

        assert twice.status == TransactionStatus.COMPLETED
        assert twice.completed_at == first_stamp
        status_rows = [
            a for a in await svc.list_activity(txn.id)
            if a.action == ActivityAction.STATUS_CHANGED
        ]
        assert len(status_rows) == 1

    async def test_reopen_clears_completed_at(self, db, firm, make_transaction):
        txn = await make_transaction()
        svc = TransactionService(db, PRINCIPAL)

        await svc.set_status(txn.id, TransactionStatus.COMPLETED)
        assert txn.completed_at is not None
        await svc.set_status(txn.id, TransactionStatus.IN_PROGRESS)

        assert txn.status == TransactionStatus.IN_PROGRESS
        assert txn.completed_at is None

    async def test_does_not_touch_title_status(self, db, firm, make_transaction):
        txn = await make_transaction(title_status=TitleStatus.WAITING_FOR_REVIEW)
        await TransactionService(db, ADMIN).set_status(txn.id, TransactionStatus.COMPLETED)
        assert txn.title_status == TitleStatus.WAITING_FOR_REVIEW

    async def test_does_not_touch_workload(self, db, firm, staff_x, make_transaction):
        staff_x.current_assignments = 1
        txn = await make_transaction(assigned_attorney_id=staff_x.id)
        await TransactionService(db, PRINCIPAL).set_status(txn.id, TransactionStatus.COMPLETED)
        await db.refresh(staff_x)
        assert staff_x.current_assignments == 1

    async def test_not_found(self, db, firm):
        with pytest.raises(NotFoundError):
            await TransactionService(db, ADMIN).set_status(uuid.uuid4(), TransactionStatus.NEW)

    @pytest.mark.parametrize("actor", [CUSTOMER, ATTORNEY, OTHER_PRINCIPAL])
    async def test_rejected_actors(self, db, firm, make_transaction, actor):
        txn = await make_transaction()
        with pytest.raises(AuthorizationError):
            await TransactionService(db, actor).set_status(txn.id, TransactionStatus.COMPLETED)
        assert txn.status == TransactionStatus.NEW
        assert txn.completed_at is None

    async def test_tightened_table_rejects(self, db, firm, make_transaction, monkeypatch):
        monkeypatch.setitem(
            transitions.ALLOWED_TRANSITIONS,
            TransactionStatus.CANCELLED,
            frozenset({TransactionStatus.CANCELLED}),
        )
        txn = await make_transaction(status=TransactionStatus.CANCELLED)
        with pytest.raises(InvalidTransitionError):
            await TransactionService(db, ADMIN).set_status(txn.id, TransactionStatus.NEW)

    async def test_publishes_status_changed(self, db, firm, make_transaction):
        received = []

        async def handler(event):
            received.append(event)

        event_bus.subscribe(TransactionStatusChanged, handler)
        txn = await make_transaction()
        svc = TransactionService(db, PRINCIPAL)
        await svc.set_status(txn.id, TransactionStatus.COMPLETED)
        await svc.commit()

        (event,) = received
        assert event.previous_status == TransactionStatus.NEW
        assert event.new_status == TransactionStatus.COMPLETED
        assert event.completed_at is not None

    async def test_store_failure_is_surfaced(self):
        db = AsyncMock()
        db.get.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))
        with pytest.raises(StoreUnavailableError):
            await TransactionService(db, ADMIN).set_status(uuid.uuid4(), TransactionStatus.NEW)


class TestSetTitleStatus:
    async def test_independent_of_status(self, db, firm, make_transaction):
        txn = await make_transaction(status=TransactionStatus.IN_PROGRESS)
        svc = TransactionService(db, PRINCIPAL)

        await svc.set_title_status(txn.id, TitleStatus.COMPLETE)

        assert txn.title_status == TitleStatus.COMPLETE
        assert txn.status == TransactionStatus.IN_PROGRESS
        assert txn.completed_at is None

    async def test_title_may_lag_completed_status(self, db, firm, make_transaction):
        txn = await make_transaction()
        svc = TransactionService(db, ADMIN)
        await svc.set_status(txn.id, TransactionStatus.COMPLETED)
        await svc.set_title_status(txn.id, TitleStatus.IN_PROCESS)
        assert (txn.status, txn.title_status) == (TransactionStatus.COMPLETED, TitleStatus.IN_PROCESS)

    async def test_activity_records_previous_value(self, db, firm, make_transaction):
        txn = await make_transaction()
        svc = TransactionService(db, PRINCIPAL)
        await svc.set_title_status(txn.id, TitleStatus.IN_PROCESS)
        await svc.set_title_status(txn.id, TitleStatus.COMPLETE)

        rows = [
            (a.previous_value, a.new_value)
            for a in await svc.list_activity(txn.id)
            if a.action == ActivityAction.TITLE_STATUS_CHANGED
        ]
        assert rows == [(None, "in_process"), ("in_process", "complete")]

    async def test_customer_rejected(self, db, firm, make_transaction):
        txn = await make_transaction()
        with pytest.raises(AuthorizationError):
            await TransactionService(db, CUSTOMER).set_title_status(txn.id, TitleStatus.COMPLETE)


class TestSchedule:
    async def test_need_flags_rederived(self, db, firm, make_transaction):
        txn = await make_transaction(needs_date=True, needs_time=True, needs_location=True)
        svc = TransactionService(db, PRINCIPAL)

        await svc.update_schedule(
            txn.id, ScheduleUpdate(estimated_closing_date=date(2025, 6, 1), closing_location="Office")
        )
        assert (txn.needs_date, txn.needs_time, txn.needs_location) == (False, True, False)

        await svc.update_schedule(txn.id, ScheduleUpdate(closing_time="2:00 PM"))
        assert txn.estimated_closing_date == date(2025, 6, 1)
        assert (txn.needs_date, txn.needs_time, txn.needs_location) == (False, False, False)

    async def test_schedule_does_not_touch_status(self, db, firm, make_transaction):
        txn = await make_transaction(status=TransactionStatus.IN_PROGRESS)
        await TransactionService(db, ADMIN).update_schedule(txn.id, ScheduleUpdate(closing_time="9:00 AM"))
        assert txn.status == TransactionStatus.IN_PROGRESS


class TestScopedReads:
    async def test_customer_sees_only_own_orders(self, db, firm, make_transaction):
        mine = await make_transaction()
        theirs = await make_transaction(customer_id=uuid.uuid4())
        svc = TransactionService(db, CUSTOMER)

        items, total = await svc.list_transactions()
        assert [t.id for t in items] == [mine.id]
        assert total == 1
        with pytest.raises(NotFoundError):
            await svc.get_transaction(theirs.id)

    async def test_attorney_sees_only_assigned(self, db, firm, staff_x, make_transaction):
        assigned = await make_transaction(assigned_attorney_id=STAFF_X_ID)
        await make_transaction()
        items, _ = await TransactionService(db, ATTORNEY).list_transactions()
        assert [t.id for t in items] == [assigned.id]

    async def test_principal_sees_own_firm(self, db, firm, other_firm, make_transaction):
        own = await make_transaction()
        foreign = await make_transaction(law_firm_id=other_firm.id)
        svc = TransactionService(db, PRINCIPAL)

        items, _ = await svc.list_transactions()
        assert [t.id for t in items] == [own.id]
        with pytest.raises(NotFoundError):
            await svc.get_transaction(foreign.id)

    async def test_admin_filters_by_firm_and_status(self, db, firm, other_firm, make_transaction):
        await make_transaction()
        target = await make_transaction(law_firm_id=other_firm.id, status=TransactionStatus.CANCELLED)
        await make_transaction(law_firm_id=other_firm.id)

        items, total = await TransactionService(db, ADMIN).list_transactions(
            law_firm_id=other_firm.id, status=TransactionStatus.CANCELLED
        )
        assert [t.id for t in items] == [target.id]
        assert total == 1
