"""
Booking number allocation.

CONCURRENCY STRATEGY: Atomic per-day counter
=============================================

Problem:
  Counting today's bookings and appending count + 1 is a read-then-write.
  Two requests on the same day read the same count and produce the same
  number.

Solution:
  One `booking_sequences` row per day, incremented with a single
  UPDATE ... SET last_value = last_value + 1 RETURNING last_value.
  The database serialises concurrent increments on the row, so every
  caller gets a distinct value without any read-modify-write in Python.

  The first booking of a day finds no row and inserts last_value = 1.
  Two first-of-day requests can both try that insert; the primary key
  rejects one, which rolls back and retries the UPDATE path.

  The increment must be the first write of the caller's transaction,
  because the retry path rolls the session back.
"""

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_booking.core.exceptions import PersistenceError
from cleaning_booking.core.logging import get_logger
from cleaning_booking.core.metrics import booking_number_retries
from cleaning_booking.models.booking import BookingSequence

logger = get_logger(__name__)

MAX_RETRY_ATTEMPTS = 3


def format_booking_number(prefix: str, day: date, sequence: int) -> str:
    return f"{prefix}{day:%Y%m%d}{sequence:04d}"


async def next_daily_sequence(db: AsyncSession, day: date) -> int:
    day_key = f"{day:%Y%m%d}"

    for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
        result = await db.execute(
            update(BookingSequence)
            .where(BookingSequence.day == day_key)
            .values(last_value=BookingSequence.last_value + 1)
            .returning(BookingSequence.last_value)
            .execution_options(synchronize_session=False)
        )
        value = result.scalar_one_or_none()
        if value is not None:
            return value

        db.add(BookingSequence(day=day_key, last_value=1))
        try:
            await db.flush()
            return 1
        except IntegrityError:
            # Another transaction created today's row first
            await db.rollback()
            booking_number_retries.inc()
            logger.info("booking_sequence_retry", day=day_key, attempt=attempt)

    raise PersistenceError("Could not allocate a booking number")


async def allocate_booking_number(db: AsyncSession, prefix: str, day: date) -> str:
    sequence = await next_daily_sequence(db, day)
    return format_booking_number(prefix, day, sequence)
