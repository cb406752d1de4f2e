"""Time-parameterised health classifier over open transactions.

``scan`` is pure: it reads the attributes ``id``, ``status``, ``created_at``
and ``assigned_attorney_id`` (plus ``order_number`` / ``law_firm_id`` when
present) from any objects it is given and never writes to them.
"""

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import Any, NamedTuple

import structlog

from closings.core.config import settings
from closings.models.enums import OPEN_STATUSES, HealthIssue, TransactionStatus
from closings.modules.health.schemas import HealthFlag

logger = structlog.get_logger()

_DAY = timedelta(days=1)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _coerce_status(value: Any) -> TransactionStatus | None:
    try:
        return TransactionStatus(value)
    except ValueError:
        return None


class _Candidate(NamedTuple):
    txn: Any
    status: TransactionStatus
    created_at: datetime
    age: timedelta


def _candidates(transactions: Iterable[Any], as_of: datetime) -> list[_Candidate]:
    """Open, well-formed transactions created no later than ``as_of``, oldest first."""
    out: list[_Candidate] = []
    for txn in transactions:
        created_at = getattr(txn, "created_at", None)
        status = _coerce_status(getattr(txn, "status", None))
        if not isinstance(created_at, datetime) or status is None or getattr(txn, "id", None) is None:
            logger.debug("health_scan_skipped_malformed", transaction_id=str(getattr(txn, "id", None)))
            continue
        if status not in OPEN_STATUSES:
            continue
        created_at = _aware(created_at)
        age = as_of - created_at
        if age < timedelta(0):
            continue
        out.append(_Candidate(txn, status, created_at, age))
    out.sort(key=lambda c: c.created_at)
    return out


def _run_pass(
    candidates: list[_Candidate],
    issue: HealthIssue,
    matches: Callable[[_Candidate], bool],
    limit: int | None,
) -> list[HealthFlag]:
    flags: list[HealthFlag] = []
    seen: set[Any] = set()
    for c in candidates:
        if limit is not None and len(flags) >= limit:
            break
        if c.txn.id in seen or not matches(c):
            continue
        seen.add(c.txn.id)
        flags.append(
            HealthFlag(
                transaction_id=c.txn.id,
                issue=issue,
                age_in_days=c.age // _DAY,
                order_number=getattr(c.txn, "order_number", None),
                law_firm_id=getattr(c.txn, "law_firm_id", None),
            )
        )
    return flags


def scan(
    transactions: Iterable[Any],
    as_of: datetime,
    *,
    stuck_new_days: int | None = None,
    stuck_in_progress_days: int | None = None,
    limit_per_issue: int | None = None,
) -> list[HealthFlag]:
    """Flag open transactions that breach service-level thresholds at ``as_of``.

    Three passes, in this order, each oldest-first and each yielding at most
    one flag per transaction:

    - stuck_new: status new and older than ``stuck_new_days``
    - stuck_in_progress: status in_progress and older than
      ``stuck_in_progress_days`` (age counts from created_at)
    - unassigned: no assigned attorney

    A transaction may carry flags from several passes. Thresholds are strict:
    exactly N days old is not stuck. Rows with a missing or malformed
    created_at or status are skipped rather than failing the scan.
    """
    stuck_new_days = settings.HEALTH_STUCK_NEW_DAYS if stuck_new_days is None else stuck_new_days
    stuck_in_progress_days = (
        settings.HEALTH_STUCK_IN_PROGRESS_DAYS
        if stuck_in_progress_days is None
        else stuck_in_progress_days
    )
    as_of = _aware(as_of)
    candidates = _candidates(transactions, as_of)

    new_limit = timedelta(days=stuck_new_days)
    in_progress_limit = timedelta(days=stuck_in_progress_days)

    return [
        *_run_pass(
            candidates,
            HealthIssue.STUCK_NEW,
            lambda c: c.status == TransactionStatus.NEW and c.age > new_limit,
            limit_per_issue,
        ),
        *_run_pass(
            candidates,
            HealthIssue.STUCK_IN_PROGRESS,
            lambda c: c.status == TransactionStatus.IN_PROGRESS and c.age > in_progress_limit,
            limit_per_issue,
        ),
        *_run_pass(
            candidates,
            HealthIssue.UNASSIGNED,
            lambda c: getattr(c.txn, "assigned_attorney_id", None) is None,
            limit_per_issue,
        ),
    ]


def count_by_issue(flags: Iterable[HealthFlag]) -> dict[HealthIssue, int]:
    counts = {issue: 0 for issue in HealthIssue}
    for flag in flags:
        counts[flag.issue] += 1
    return counts
