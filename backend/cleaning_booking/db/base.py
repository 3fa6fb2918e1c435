"""
Declarative base and shared mixins for all ORM models.
"""

from sqlalchemy import Column
from sqlalchemy.orm import DeclarativeBase

from cleaning_booking.db.types import UTCDateTime, utcnow


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    # Python-side defaults so values are known after flush without a refresh
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow)
