"""
Booking model representing one scheduled cleaning visit.

Key design decisions:
- Line items snapshot the catalog name and prices at booking time
- `booking_number` is unique; numbers come from the per-day `booking_sequences`
  counter rather than counting existing rows
- Cancellation is a status, never a row deletion; a refund is recorded on the
  cancellation fields instead of a separate "refunded" status
- `version` enables optimistic locking for concurrent updates
"""

import enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from cleaning_booking.db.base import Base, TimestampMixin
from cleaning_booking.db.types import ZERO, Money, UTCDateTime, utcnow


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TimeSlot(str, enum.Enum):
    MORNING = "9:00 AM - 11:00 AM"
    MIDDAY = "11:00 AM - 1:00 PM"
    AFTERNOON = "2:00 PM - 4:00 PM"
    EVENING = "4:00 PM - 6:00 PM"


class StaffRole(str, enum.Enum):
    LEAD = "lead"
    HELPER = "helper"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_number = Column(String(32), unique=True, index=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Service address
    street = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    zip_code = Column(String(20), nullable=False)
    country = Column(String(100), nullable=False, default="India")

    scheduled_date = Column(UTCDateTime(), nullable=False)
    scheduled_time_slot = Column(String(32), nullable=False)
    special_instructions = Column(String(500), nullable=True)

    # Pricing
    subtotal = Column(Money(), nullable=False)
    tax = Column(Money(), nullable=False)
    discount = Column(Money(), nullable=False, default=ZERO)
    total = Column(Money(), nullable=False)
    coupon_code = Column(String(40), nullable=True)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)

    # Completion
    completed_at = Column(UTCDateTime(), nullable=True)
    completion_notes = Column(Text, nullable=True)
    rating = Column(Integer, nullable=True)
    feedback = Column(Text, nullable=True)

    # Cancellation
    is_cancelled = Column(Boolean, nullable=False, default=False)
    cancelled_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancelled_at = Column(UTCDateTime(), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    refund_amount = Column(Money(), nullable=True)

    # Most recent payment attempt; plain reference, payments point back via booking_id
    payment_id = Column(Integer, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    line_items = relationship(
        "BookingLineItem",
        back_populates="booking",
        lazy="selectin",
        order_by="BookingLineItem.position",
        cascade="all, delete-orphan",
    )
    staff_assignments = relationship(
        "BookingStaffAssignment",
        back_populates="booking",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'assigned', 'in_progress', 'completed', 'cancelled')",
            name="check_booking_status",
        ),
        CheckConstraint(
            "subtotal >= 0 AND tax >= 0 AND discount >= 0 AND total >= 0",
            name="check_booking_pricing_non_negative",
        ),
        CheckConstraint("rating IS NULL OR rating BETWEEN 1 AND 5", name="check_booking_rating"),
        Index("ix_bookings_customer_created", "customer_id", "created_at"),
        Index("ix_bookings_status_scheduled", "status", "scheduled_date"),
    )

    @property
    def estimated_duration_minutes(self) -> int:
        return sum(item.quantity * 60 for item in self.line_items)

    @property
    def is_refunded(self) -> bool:
        return bool(self.refund_amount)

    @property
    def pricing(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "tax": self.tax,
            "discount": self.discount,
            "total": self.total,
        }

    @property
    def completion(self) -> Optional[dict]:
        if self.completed_at is None and not (self.completion_notes or self.rating or self.feedback):
            return None
        return {
            "completed_at": self.completed_at,
            "notes": self.completion_notes,
            "rating": self.rating,
            "feedback": self.feedback,
        }

    @property
    def cancellation(self) -> Optional[dict]:
        if not self.is_cancelled and self.refund_amount is None:
            return None
        return {
            "cancelled_by": self.cancelled_by,
            "cancelled_at": self.cancelled_at,
            "reason": self.cancellation_reason,
            "refund_amount": self.refund_amount,
        }

    @property
    def service_address(self) -> dict:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
        }

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, number={self.booking_number}, status={self.status})>"


class BookingLineItem(Base):
    __tablename__ = "booking_line_items"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    service_name = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    base_price = Column(Money(), nullable=False)
    add_ons = Column(JSON, nullable=False, default=list)  # [{"name", "price"}] snapshot
    subtotal = Column(Money(), nullable=False)

    booking = relationship("Booking", back_populates="line_items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="check_line_item_quantity_positive"),
        CheckConstraint("base_price >= 0 AND subtotal >= 0", name="check_line_item_prices_non_negative"),
    )


class BookingStaffAssignment(Base):
    __tablename__ = "booking_staff"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    staff_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(10), nullable=False, default=StaffRole.HELPER.value)
    assigned_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    booking = relationship("Booking", back_populates="staff_assignments")

    __table_args__ = (
        UniqueConstraint("booking_id", "staff_id", name="uq_booking_staff"),
        CheckConstraint("role IN ('lead', 'helper')", name="check_booking_staff_role"),
    )


class BookingSequence(Base):
    """Per-day booking number counter, incremented atomically."""

    __tablename__ = "booking_sequences"

    day = Column(String(8), primary_key=True)  # YYYYMMDD
    last_value = Column(Integer, nullable=False)
