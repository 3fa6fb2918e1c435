"""
Who may see and change bookings and payments.

Called by the route and service layer before any read is returned or any
write is made:
- customers: their own bookings and payments
- staff: bookings they are assigned to; no payments
- admin: everything
"""

from sqlalchemy import Select, select

from cleaning_booking.core.exceptions import AuthorizationError
from cleaning_booking.core.security import CurrentUser
from cleaning_booking.models.booking import Booking, BookingStaffAssignment
from cleaning_booking.models.payment import Payment
from cleaning_booking.services.booking_lifecycle import CUSTOMER_EDITABLE

CUSTOMER_FIELDS = frozenset({
    "scheduled_date", "scheduled_time_slot", "special_instructions", "service_address",
})
STAFF_FIELDS = frozenset({"status", "assigned_staff", "completion"})
SCHEDULE_FIELDS = frozenset({"scheduled_date", "scheduled_time_slot"})


def _is_assigned(user: CurrentUser, booking: Booking) -> bool:
    return any(a.staff_id == user.id for a in booking.staff_assignments)


def can_access_booking(user: CurrentUser, booking: Booking) -> bool:
    if user.is_admin:
        return True
    if user.is_customer:
        return booking.customer_id == user.id
    if user.is_staff:
        return _is_assigned(user, booking)
    return False


def ensure_can_view_booking(user: CurrentUser, booking: Booking) -> None:
    if not can_access_booking(user, booking):
        raise AuthorizationError("Not authorized to view this booking")


def ensure_can_modify_booking(user: CurrentUser, booking: Booking) -> None:
    if not can_access_booking(user, booking):
        raise AuthorizationError("Not authorized to modify this booking")


def writable_fields(user: CurrentUser, booking: Booking) -> frozenset[str]:
    if user.is_customer:
        return CUSTOMER_FIELDS if booking.status in CUSTOMER_EDITABLE else frozenset()
    return CUSTOMER_FIELDS | STAFF_FIELDS


def ensure_can_view_payment(user: CurrentUser, payment: Payment) -> None:
    if user.is_admin:
        return
    if user.is_customer and payment.customer_id == user.id:
        return
    raise AuthorizationError("Not authorized to view this payment")


def scope_bookings(query: Select, user: CurrentUser) -> Select:
    """Restrict a booking query to the rows the user may list."""
    if user.is_customer:
        return query.where(Booking.customer_id == user.id)
    if user.is_staff:
        assigned = select(BookingStaffAssignment.booking_id).where(
            BookingStaffAssignment.staff_id == user.id
        )
        return query.where(Booking.id.in_(assigned))
    return query
