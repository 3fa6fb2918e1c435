"""
Tests for the booking state machine and the cancel/reschedule windows.
"""

from datetime import datetime, timedelta, timezone

import pytest

from cleaning_booking.core.exceptions import InvalidStatusTransition
from cleaning_booking.services.booking_lifecycle import (
    assert_transition,
    can_cancel,
    can_reschedule,
    can_transition,
)

NOW = datetime(2026, 3, 10, 6, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("current,target", [
    ("pending", "confirmed"),
    ("confirmed", "assigned"),
    ("assigned", "in_progress"),
    ("in_progress", "completed"),
    ("pending", "cancelled"),
    ("confirmed", "cancelled"),
    ("assigned", "cancelled"),
])
def test_allowed_transitions(current, target):
    assert can_transition(current, target)
    assert_transition(current, target)


@pytest.mark.parametrize("current,target", [
    ("pending", "completed"),
    ("pending", "assigned"),
    ("in_progress", "cancelled"),
    ("completed", "cancelled"),
    ("cancelled", "pending"),
    ("completed", "in_progress"),
])
def test_rejected_transitions(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidStatusTransition) as exc_info:
        assert_transition(current, target)
    assert exc_info.value.details == {"current": current, "target": target}


def test_same_status_is_not_a_transition():
    assert_transition("completed", "completed")


def test_cancel_allowed_well_before_visit():
    assert can_cancel("pending", NOW + timedelta(hours=3), NOW)
    assert can_cancel("confirmed", NOW + timedelta(days=2), NOW)


def test_cancel_exactly_at_window_boundary_is_rejected():
    assert not can_cancel("pending", NOW + timedelta(hours=2), NOW)


def test_cancel_just_outside_window_is_allowed():
    assert can_cancel("pending", NOW + timedelta(hours=2, seconds=1), NOW)


def test_cancel_rejected_once_assigned():
    assert not can_cancel("assigned", NOW + timedelta(days=2), NOW)


def test_reschedule_window_is_four_hours():
    assert can_reschedule("assigned", NOW + timedelta(hours=5), NOW)
    assert not can_reschedule("assigned", NOW + timedelta(hours=4), NOW)
    assert not can_reschedule("in_progress", NOW + timedelta(days=2), NOW)


def test_windows_follow_configured_hours():
    scheduled = NOW + timedelta(hours=5)
    assert not can_cancel("pending", scheduled, NOW, window_hours=6)
    assert not can_reschedule("pending", scheduled, NOW, window_hours=6)
