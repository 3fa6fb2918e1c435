"""
Payment attempts and the refunds applied to them.

Key design decisions:
- Partial unique index on (booking_id) WHERE status = 'success' is the
  database backstop for "at most one successful payment per booking"
- `refund_amount` accumulates across partial refunds; `status` only becomes
  'refunded' once the whole amount has been returned
- Each gateway refund is a `payment_refunds` row keyed by the gateway refund
  id, which makes applying the same refund twice a no-op
"""

import enum
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import relationship

from cleaning_booking.db.base import Base, TimestampMixin
from cleaning_booking.db.types import ZERO, Money, UTCDateTime, utcnow


class PaymentStatus(str, enum.Enum):
    INITIATED = "initiated"
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Status only moves to a higher rank; equal rank means "already there".
STATUS_RANK = {
    PaymentStatus.INITIATED.value: 0,
    PaymentStatus.PENDING.value: 1,
    PaymentStatus.FAILED.value: 2,
    PaymentStatus.CANCELLED.value: 2,
    PaymentStatus.SUCCESS.value: 3,
    PaymentStatus.REFUNDED.value: 4,
}


def statuses_below(status: str) -> list[str]:
    rank = STATUS_RANK[status]
    return [name for name, value in STATUS_RANK.items() if value < rank]


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(String(40), unique=True, index=True, nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Money(), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    payment_method = Column(String(20), nullable=False, default="razorpay")
    gateway = Column(String(20), nullable=False, default="razorpay")
    gateway_order_id = Column(String(64), unique=True, index=True, nullable=True)
    gateway_transaction_id = Column(String(64), index=True, nullable=True)
    gateway_signature = Column(String(128), nullable=True)
    status = Column(String(20), nullable=False, default=PaymentStatus.INITIATED.value, index=True)

    # Refund summary; individual refunds live in payment_refunds
    is_refunded = Column(Boolean, nullable=False, default=False)
    refund_amount = Column(Money(), nullable=False, default=ZERO)
    refund_transaction_id = Column(String(64), nullable=True)
    refunded_at = Column(UTCDateTime(), nullable=True)
    refund_reason = Column(String(500), nullable=True)
    refund_processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    refunds = relationship(
        "PaymentRefund",
        back_populates="payment",
        lazy="selectin",
        order_by="PaymentRefund.id",
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
        CheckConstraint(
            "refund_amount >= 0 AND refund_amount <= amount",
            name="check_payment_refund_within_amount",
        ),
        CheckConstraint(
            "status IN ('initiated', 'pending', 'success', 'failed', 'cancelled', 'refunded')",
            name="check_payment_status",
        ),
        Index(
            "uq_payments_one_success_per_booking",
            "booking_id",
            unique=True,
            postgresql_where=text("status = 'success'"),
            sqlite_where=text("status = 'success'"),
        ),
        Index("ix_payments_status_created", "status", "created_at"),
    )

    @property
    def formatted_amount(self) -> str:
        return f"{self.currency} {self.amount:.2f}"

    @property
    def is_fully_refunded(self) -> bool:
        return self.is_refunded and self.refund_amount >= self.amount

    @property
    def refundable_amount(self) -> Decimal:
        if self.status != PaymentStatus.SUCCESS.value:
            return ZERO
        return self.amount - (self.refund_amount or ZERO)

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, txn={self.transaction_id}, status={self.status})>"


class PaymentRefund(Base):
    __tablename__ = "payment_refunds"

    id = Column(Integer, primary_key=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    gateway_refund_id = Column(String(64), unique=True, nullable=False)
    amount = Column(Money(), nullable=False)
    reason = Column(String(500), nullable=True)
    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    source = Column(String(20), nullable=False, default="api")  # api, webhook
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    payment = relationship("Payment", back_populates="refunds")

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_refund_amount_positive"),
    )
