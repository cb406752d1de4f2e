"""Pure aggregation over an already-fetched working set of transactions.

Filtering is a linear scan; these helpers assume per-firm volumes.
"""

import math
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta, timezone
from typing import Any

from closings.models.enums import OPEN_STATUSES, OrderType, TitleStatus, TransactionStatus
from closings.modules.pipeline.schemas import PipelineStats, PipelineTab

_DAY = timedelta(days=1)

TAB_STATUSES: dict[PipelineTab, frozenset[TransactionStatus] | None] = {
    PipelineTab.ALL: None,
    PipelineTab.OPEN: OPEN_STATUSES,
    PipelineTab.CLOSED: frozenset({TransactionStatus.COMPLETED}),
    PipelineTab.CANCELLED: frozenset({TransactionStatus.CANCELLED}),
}

NEED_FLAGS = ("needs_date", "needs_time", "needs_location")


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def partition(transactions: Iterable[Any]) -> dict[PipelineTab, list[Any]]:
    """Split into open / closed / cancelled buckets, preserving order."""
    buckets: dict[PipelineTab, list[Any]] = {
        PipelineTab.OPEN: [],
        PipelineTab.CLOSED: [],
        PipelineTab.CANCELLED: [],
    }
    for txn in transactions:
        for tab in buckets:
            if txn.status in TAB_STATUSES[tab]:  # type: ignore[operator]
                buckets[tab].append(txn)
    return buckets


def status_counts(transactions: Iterable[Any]) -> dict[TransactionStatus, int]:
    counts = {s: 0 for s in TransactionStatus}
    for txn in transactions:
        counts[TransactionStatus(txn.status)] += 1
    return counts


def title_status_counts(transactions: Iterable[Any]) -> dict[TitleStatus, int]:
    """Counts per title sub-status; unset counts as unassigned."""
    counts = {s: 0 for s in TitleStatus}
    for txn in transactions:
        counts[TitleStatus(txn.title_status or TitleStatus.UNASSIGNED)] += 1
    return counts


def order_type_counts(transactions: Iterable[Any]) -> dict[OrderType, int]:
    """Counts per order type; unset counts as closing."""
    counts = {t: 0 for t in OrderType}
    for txn in transactions:
        counts[OrderType(txn.order_type or OrderType.CLOSING)] += 1
    return counts


def need_counts(transactions: Iterable[Any]) -> dict[str, int]:
    counts = {flag: 0 for flag in NEED_FLAGS}
    for txn in transactions:
        for flag in NEED_FLAGS:
            if getattr(txn, flag, None) is True:
                counts[flag] += 1
    return counts


def matches_search(txn: Any, term: str) -> bool:
    """Case-insensitive substring match over address, order number and customer name."""
    needle = term.strip().lower()
    if not needle:
        return True
    haystack = (
        txn.property_street,
        txn.property_city,
        txn.order_number,
        txn.customer_name,
    )
    return any(needle in value.lower() for value in haystack if value)


def filter_transactions(
    transactions: Iterable[Any],
    search: str | None = None,
    tab: PipelineTab = PipelineTab.ALL,
) -> list[Any]:
    statuses = TAB_STATUSES[tab]
    return [
        txn
        for txn in transactions
        if (statuses is None or txn.status in statuses)
        and (not search or matches_search(txn, search))
    ]


def paginate(items: Sequence[Any], page: int, page_size: int) -> tuple[list[Any], int, int]:
    """Return (window, clamped page, total pages). Pages are 1-based."""
    if page_size < 1:
        raise ValueError("page_size must be positive")
    total_pages = max(1, math.ceil(len(items) / page_size))
    page = min(max(page, 1), total_pages)
    start = (page - 1) * page_size
    return list(items[start : start + page_size]), page, total_pages


def ready_to_close(transactions: Iterable[Any], today: date, horizon_days: int) -> int:
    """In-progress transactions whose estimated closing date falls within the horizon.

    Overdue dates count too.
    """
    cutoff = today + timedelta(days=horizon_days)
    return sum(
        1
        for txn in transactions
        if txn.status == TransactionStatus.IN_PROGRESS
        and txn.estimated_closing_date is not None
        and txn.estimated_closing_date <= cutoff
    )


def closed_recently(transactions: Iterable[Any], now: datetime, window_days: int) -> int:
    """Completed transactions whose completion (or creation) is inside the window."""
    since = now - timedelta(days=window_days)
    total = 0
    for txn in transactions:
        if txn.status != TransactionStatus.COMPLETED:
            continue
        stamp = txn.completed_at or txn.created_at
        if stamp is not None and _aware(stamp) >= since:
            total += 1
    return total


def avg_days_to_completion(transactions: Iterable[Any]) -> int:
    """Mean whole days from creation to completion, rounded; 0 when nothing completed."""
    days = [
        (_aware(txn.completed_at) - _aware(txn.created_at)) // _DAY
        for txn in transactions
        if txn.completed_at is not None and txn.created_at is not None
    ]
    if not days:
        return 0
    return round(sum(days) / len(days))


def pipeline_stats(
    transactions: Sequence[Any],
    now: datetime,
    ready_to_close_days: int,
    recently_closed_days: int,
) -> PipelineStats:
    now = _aware(now)
    return PipelineStats(
        status_counts=status_counts(transactions),
        title_status_counts=title_status_counts(transactions),
        order_type_counts=order_type_counts(transactions),
        need_counts=need_counts(transactions),
        tab_counts={tab: len(filter_transactions(transactions, tab=tab)) for tab in PipelineTab},
        ready_to_close=ready_to_close(transactions, now.date(), ready_to_close_days),
        closed_recently=closed_recently(transactions, now, recently_closed_days),
        avg_days_to_completion=avg_days_to_completion(transactions),
    )
