"""Tests for the domain event bus and the dashboard invalidation mapping."""

import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from closings.core.errors import StoreUnavailableError
from closings.core.events import (
    AssignmentChanged,
    DomainEvent,
    EventBus,
    ScheduleChanged,
    StaffChanged,
    TitleStatusChanged,
    TransactionStatusChanged,
    commit_and_publish,
)
from closings.models.enums import TitleStatus, TransactionStatus
from closings.modules.pipeline.router import format_sse, invalidations_for, redacts_ids

from conftest import ADMIN, ATTORNEY, PRINCIPAL

pytestmark = pytest.mark.anyio

FIRM_A = uuid.UUID("00000000-0000-0005-0000-00000000000a")
FIRM_B = uuid.UUID("00000000-0000-0005-0000-00000000000b")


def _status_event(firm=FIRM_A) -> TransactionStatusChanged:
    return TransactionStatusChanged(
        law_firm_id=firm,
        transaction_id=uuid.uuid4(),
        previous_status=TransactionStatus.NEW,
        new_status=TransactionStatus.IN_PROGRESS,
    )


class TestEventBus:
    async def test_handlers_receive_matching_events_only(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event.name)

        bus.subscribe(TransactionStatusChanged, handler)
        await bus.publish(_status_event())
        await bus.publish(StaffChanged(law_firm_id=FIRM_A, staff_id=uuid.uuid4()))

        assert seen == ["TransactionStatusChanged"]

    async def test_base_class_subscription_receives_everything(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event)

        bus.subscribe(DomainEvent, handler)
        await bus.publish(_status_event())
        await bus.publish(ScheduleChanged(law_firm_id=FIRM_A, transaction_id=uuid.uuid4()))
        assert len(seen) == 2

    async def test_unsubscribe(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event)

        unsubscribe = bus.subscribe(TransactionStatusChanged, handler)
        unsubscribe()
        await bus.publish(_status_event())
        assert seen == []

    async def test_failing_handler_does_not_block_others(self):
        bus = EventBus()
        seen = []

        async def broken(event):
            raise RuntimeError("boom")

        async def healthy(event):
            seen.append(event)

        bus.subscribe(TransactionStatusChanged, broken)
        bus.subscribe(TransactionStatusChanged, healthy)
        queue = bus.connect(FIRM_A)

        await bus.publish(_status_event())

        assert len(seen) == 1
        assert queue.qsize() == 1

    async def test_queues_are_scoped_by_firm(self):
        bus = EventBus()
        firm_a = bus.connect(FIRM_A)
        firm_b = bus.connect(FIRM_B)
        everyone = bus.connect(None)

        await bus.publish(_status_event(FIRM_A))

        assert (firm_a.qsize(), firm_b.qsize(), everyone.qsize()) == (1, 0, 1)

        bus.disconnect(FIRM_A, firm_a)
        await bus.publish(_status_event(FIRM_A))
        assert firm_a.qsize() == 1


class TestCommitAndPublish:
    async def test_publishes_after_commit_and_drains(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event)

        bus.subscribe(DomainEvent, handler)
        db = AsyncMock()
        pending = [_status_event(), _status_event()]

        await commit_and_publish(db, pending, bus)

        db.commit.assert_awaited_once()
        assert len(seen) == 2
        assert pending == []

    async def test_nothing_published_when_commit_fails(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event)

        bus.subscribe(DomainEvent, handler)
        db = AsyncMock()
        db.commit.side_effect = OperationalError("COMMIT", {}, Exception("disk full"))
        pending = [_status_event()]

        with pytest.raises(StoreUnavailableError):
            await commit_and_publish(db, pending, bus)
        assert seen == []
        assert len(pending) == 1


class TestInvalidations:
    def test_status_and_assignment_invalidate_health(self):
        assignment = AssignmentChanged(
            law_firm_id=FIRM_A, transaction_id=uuid.uuid4(), previous_staff_id=None, new_staff_id=uuid.uuid4()
        )
        for event in (_status_event(), assignment):
            assert invalidations_for(event) == ["health.invalidated", "pipeline.invalidated"]

    def test_other_changes_invalidate_pipeline_only(self):
        title = TitleStatusChanged(
            law_firm_id=FIRM_A,
            transaction_id=uuid.uuid4(),
            previous_title_status=None,
            new_title_status=TitleStatus.IN_PROCESS,
        )
        staff = StaffChanged(law_firm_id=FIRM_A, staff_id=uuid.uuid4())
        for event in (title, staff):
            assert invalidations_for(event) == ["pipeline.invalidated"]

    def test_sse_frame(self):
        frame = format_sse("pipeline.invalidated", _status_event())
        assert frame.startswith('data: {"type": "pipeline.invalidated", "event": "TransactionStatusChanged"')
        assert frame.endswith("\n\n")

    def test_attorney_frames_carry_no_ids(self):
        event = _status_event()
        assert redacts_ids(ATTORNEY)
        assert not redacts_ids(PRINCIPAL)
        assert not redacts_ids(ADMIN)

        frame = format_sse("health.invalidated", event, redacts_ids(ATTORNEY))

        assert str(event.transaction_id) not in frame
        assert str(event.law_firm_id) not in frame
        assert '"type": "health.invalidated"' in frame
