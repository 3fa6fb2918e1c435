from cleaning_booking.models.user import User, UserRole
from cleaning_booking.models.service import Service
from cleaning_booking.models.coupon import Coupon
from cleaning_booking.models.booking import (
    Booking,
    BookingLineItem,
    BookingSequence,
    BookingStaffAssignment,
    BookingStatus,
    StaffRole,
    TimeSlot,
)
from cleaning_booking.models.payment import Payment, PaymentRefund, PaymentStatus

__all__ = [
    "User", "UserRole",
    "Service",
    "Coupon",
    "Booking", "BookingLineItem", "BookingSequence", "BookingStaffAssignment",
    "BookingStatus", "StaffRole", "TimeSlot",
    "Payment", "PaymentRefund", "PaymentStatus",
]
