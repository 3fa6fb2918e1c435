"""
Catalog service offered to customers.

Add-ons are stored as a JSON list of {"name", "price"} objects; bookings
copy the prices they use, so editing the catalog never touches existing
bookings.
"""

from sqlalchemy import JSON, Boolean, CheckConstraint, Column, Integer, String, Text

from cleaning_booking.db.base import Base, TimestampMixin
from cleaning_booking.db.types import Money


class Service(Base, TimestampMixin):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(120), unique=True, index=True, nullable=False)
    category = Column(String(40), nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(Money(), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    duration_minutes = Column(Integer, nullable=False, default=60)
    add_ons = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    __table_args__ = (
        CheckConstraint("base_price >= 0", name="check_service_base_price_non_negative"),
        CheckConstraint("duration_minutes >= 30", name="check_service_min_duration"),
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, slug={self.slug}, active={self.is_active})>"
