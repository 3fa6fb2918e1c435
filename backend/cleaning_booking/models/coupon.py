"""
Discount coupons.

`is_valid` and `apply` are pure; redeeming a coupon goes through
`coupon_service.reserve_coupon`, which validates and increments the usage
count in a single UPDATE.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String

from cleaning_booking.db.base import Base, TimestampMixin
from cleaning_booking.db.types import ZERO, Money, UTCDateTime


@dataclass(frozen=True)
class CouponQuote:
    valid: bool
    discount: Decimal


class Coupon(Base, TimestampMixin):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(40), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    discount_type = Column(String(10), nullable=False)  # percentage, fixed
    discount_value = Column(Money(), nullable=False)
    minimum_order_value = Column(Money(), nullable=False, default=ZERO)
    maximum_discount = Column(Money(), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    valid_from = Column(UTCDateTime(), nullable=False)
    valid_until = Column(UTCDateTime(), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("discount_type IN ('percentage', 'fixed')", name="check_coupon_discount_type"),
        CheckConstraint("discount_value >= 0", name="check_coupon_value_non_negative"),
        CheckConstraint("usage_count >= 0", name="check_coupon_usage_non_negative"),
        CheckConstraint(
            "usage_limit IS NULL OR usage_count <= usage_limit",
            name="check_coupon_usage_within_limit",
        ),
    )

    def is_expired(self, now: datetime) -> bool:
        return now > self.valid_until

    def is_valid(self, now: datetime) -> bool:
        return (
            self.is_active
            and self.valid_from <= now <= self.valid_until
            and (self.usage_limit is None or self.usage_count < self.usage_limit)
        )

    def apply(self, order_total: Decimal, now: datetime) -> CouponQuote:
        if not self.is_valid(now) or order_total < self.minimum_order_value:
            return CouponQuote(valid=False, discount=ZERO)

        if self.discount_type == "percentage":
            discount = order_total * self.discount_value / Decimal(100)
            if self.maximum_discount is not None and discount > self.maximum_discount:
                discount = self.maximum_discount
        else:
            discount = min(self.discount_value, order_total)

        return CouponQuote(
            valid=True,
            discount=discount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        )

    def __repr__(self) -> str:
        return f"<Coupon(code={self.code}, used={self.usage_count}/{self.usage_limit})>"
