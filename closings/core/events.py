"""Typed domain events and the in-process bus that fans them out.

Mutations publish after their write is committed. Consumers either register
an async handler for the event types they care about, or open a queue scoped
to one law firm (used by the SSE dashboard stream).
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import structlog
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from closings.core.errors import translate_store_errors
from closings.models.enums import TitleStatus, TransactionStatus

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DomainEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    law_firm_id: uuid.UUID
    actor_id: uuid.UUID | None = None
    occurred_at: datetime = Field(default_factory=_utcnow)

    @property
    def name(self) -> str:
        return type(self).__name__


class TransactionCreated(DomainEvent):
    transaction_id: uuid.UUID


class TransactionStatusChanged(DomainEvent):
    transaction_id: uuid.UUID
    previous_status: TransactionStatus
    new_status: TransactionStatus
    completed_at: datetime | None = None


class TitleStatusChanged(DomainEvent):
    transaction_id: uuid.UUID
    previous_title_status: TitleStatus | None
    new_title_status: TitleStatus


class ScheduleChanged(DomainEvent):
    transaction_id: uuid.UUID


class AssignmentChanged(DomainEvent):
    transaction_id: uuid.UUID
    previous_staff_id: uuid.UUID | None
    new_staff_id: uuid.UUID | None


class StaffChanged(DomainEvent):
    staff_id: uuid.UUID


class WorkloadReconciled(DomainEvent):
    corrections: dict[str, int] = Field(default_factory=dict)


Handler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """Fans domain events out to typed handlers and per-firm queues."""

    def __init__(self) -> None:
        self._handlers: dict[type[DomainEvent], list[Handler]] = {}
        # None key = subscribers that receive every firm's events (admins)
        self._queues: dict[uuid.UUID | None, list[asyncio.Queue]] = {}

    def subscribe(self, event_type: type[DomainEvent], handler: Handler) -> Callable[[], None]:
        """Register a handler; returns a callable that unregisters it."""
        self._handlers.setdefault(event_type, []).append(handler)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def connect(self, law_firm_id: uuid.UUID | None) -> asyncio.Queue:
        """Open a queue receiving events for one firm, or all firms when None."""
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.setdefault(law_firm_id, []).append(queue)
        logger.info(
            "event_stream_connected",
            law_firm_id=str(law_firm_id) if law_firm_id else "all",
            total=len(self._queues[law_firm_id]),
        )
        return queue

    def disconnect(self, law_firm_id: uuid.UUID | None, queue: asyncio.Queue) -> None:
        if law_firm_id in self._queues:
            try:
                self._queues[law_firm_id].remove(queue)
            except ValueError:
                pass
            if not self._queues[law_firm_id]:
                del self._queues[law_firm_id]
        logger.info("event_stream_disconnected", law_firm_id=str(law_firm_id) if law_firm_id else "all")

    async def publish(self, event: DomainEvent) -> None:
        """Deliver an event to matching handlers, then to firm and global queues.

        A failing handler is logged and does not stop delivery: the mutation
        behind the event is already committed.
        """
        for event_type, handlers in list(self._handlers.items()):
            if not isinstance(event, event_type):
                continue
            for handler in list(handlers):
                try:
                    await handler(event)
                except Exception as exc:  # noqa: BLE001
                    logger.warning(
                        "event_handler_failed",
                        event_name=event.name,
                        handler=getattr(handler, "__name__", repr(handler)),
                        error=str(exc),
                    )

        for key in (event.law_firm_id, None):
            for queue in self._queues.get(key, []):
                await queue.put(event)

    def clear(self) -> None:
        self._handlers.clear()
        self._queues.clear()


# Module-level singleton
event_bus = EventBus()


async def commit_and_publish(
    db: AsyncSession,
    pending: list[DomainEvent],
    bus: EventBus | None = None,
) -> None:
    """Commit the session, then publish the events its writes produced.

    Nothing is published when the commit fails. ``pending`` is drained.
    """
    with translate_store_errors("commit"):
        await db.commit()
    events, pending[:] = list(pending), []
    for event in events:
        await (bus or event_bus).publish(event)
