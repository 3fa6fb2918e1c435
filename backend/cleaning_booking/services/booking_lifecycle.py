"""
Booking state machine and time-window guards.

Pure functions of (status, scheduled_date, now); nothing here touches the
database or a clock of its own, so callers pass `now` explicitly.
"""

from datetime import datetime, timedelta

from cleaning_booking.core.exceptions import InvalidStatusTransition
from cleaning_booking.models.booking import BookingStatus

PENDING = BookingStatus.PENDING.value
CONFIRMED = BookingStatus.CONFIRMED.value
ASSIGNED = BookingStatus.ASSIGNED.value
IN_PROGRESS = BookingStatus.IN_PROGRESS.value
COMPLETED = BookingStatus.COMPLETED.value
CANCELLED = BookingStatus.CANCELLED.value

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({ASSIGNED, CANCELLED}),
    ASSIGNED: frozenset({IN_PROGRESS, CANCELLED}),
    IN_PROGRESS: frozenset({COMPLETED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({COMPLETED, CANCELLED})
CUSTOMER_CANCELLABLE = frozenset({PENDING, CONFIRMED})
RESCHEDULABLE = frozenset({PENDING, CONFIRMED, ASSIGNED})
CUSTOMER_EDITABLE = frozenset({PENDING, CONFIRMED})


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def assert_transition(current: str, target: str) -> None:
    if current == target:
        return
    if not can_transition(current, target):
        raise InvalidStatusTransition(current, target)


def can_cancel(status: str, scheduled_date: datetime, now: datetime, window_hours: int = 2) -> bool:
    """True only while strictly more than `window_hours` remain before the visit."""
    return now < scheduled_date - timedelta(hours=window_hours) and status in CUSTOMER_CANCELLABLE


def can_reschedule(status: str, scheduled_date: datetime, now: datetime, window_hours: int = 4) -> bool:
    return now < scheduled_date - timedelta(hours=window_hours) and status in RESCHEDULABLE
