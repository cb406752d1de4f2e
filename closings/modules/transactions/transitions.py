"""Status transition table and the side effects tied to each target status."""

from datetime import date, datetime

from closings.core.errors import InvalidTransitionError
from closings.models.enums import TransactionStatus

_ALL_STATUSES = frozenset(TransactionStatus)

# Every status may currently move to every status, including itself.
# Tightening the lifecycle (e.g. forbidding completed -> new) means removing
# entries here.
ALLOWED_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.NEW: _ALL_STATUSES,
    TransactionStatus.IN_PROGRESS: _ALL_STATUSES,
    TransactionStatus.COMPLETED: _ALL_STATUSES,
    TransactionStatus.CANCELLED: _ALL_STATUSES,
}


def can_transition(current: TransactionStatus, target: TransactionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def validate_transition(current: TransactionStatus, target: TransactionStatus) -> None:
    """Raise InvalidTransitionError when the table forbids current -> target."""
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move transaction from '{current.value}' to '{target.value}'",
            detail={"from": current.value, "to": target.value},
        )


def completed_at_after(
    target: TransactionStatus,
    previous_completed_at: datetime | None,
    now: datetime,
) -> datetime | None:
    """Return the completed_at value a transaction must carry after moving to ``target``.

    Entering ``completed`` stamps ``now``; staying in ``completed`` keeps the
    original stamp; any other status clears it.
    """
    if target != TransactionStatus.COMPLETED:
        return None
    return previous_completed_at or now


def derive_need_flags(
    estimated_closing_date: date | None,
    closing_time: str | None,
    closing_location: str | None,
) -> dict[str, bool]:
    """Scheduling completeness flags; a missing field means it is still needed."""
    return {
        "needs_date": estimated_closing_date is None,
        "needs_time": not closing_time,
        "needs_location": not closing_location,
    }
