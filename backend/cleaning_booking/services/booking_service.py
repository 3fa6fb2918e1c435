"""
Booking service: create, read, update and cancel cleaning bookings.

CONCURRENCY STRATEGY
====================

Booking numbers:
  Allocated from the per-day counter in `booking_numbers`, which must be
  the first write of the transaction. Catalog reads and input validation
  happen before it; coupon redemption and the booking insert after it.

Coupon redemption:
  `reserve_coupon` increments usage in a conditional UPDATE inside the same
  transaction, so a booking that fails later releases the coupon use on
  rollback.

Updates and cancellations:
  Bookings carry a `version` column wired into the mapper as
  `version_id_col`. Two requests that load the same version and both write
  get one success; the other flush raises StaleDataError, which the API
  maps to 409.

Payment-driven changes:
  A successful payment moves `confirmed -> assigned` with a conditional
  UPDATE (WHERE status = 'confirmed') rather than through the ORM, so the
  client verify call and the gateway webhook can race without either one
  failing.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_booking.core.config import Settings
from cleaning_booking.core.exceptions import (
    AuthorizationError,
    BookingNotCancellable,
    BookingNotReschedulable,
    InvalidTimeSlot,
    NotFoundError,
    ScheduleInPast,
    ValidationError,
)
from cleaning_booking.core.logging import get_logger
from cleaning_booking.core.metrics import record_booking_operation
from cleaning_booking.core.security import CurrentUser
from cleaning_booking.db.types import utcnow
from cleaning_booking.models.booking import (
    Booking,
    BookingLineItem,
    BookingStaffAssignment,
    BookingStatus,
    TimeSlot,
)
from cleaning_booking.models.user import User, UserRole
from cleaning_booking.schemas.booking import BookingCreate, BookingUpdate, StaffAssignmentIn
from cleaning_booking.services import access
from cleaning_booking.services.booking_lifecycle import (
    CANCELLED,
    COMPLETED,
    TERMINAL_STATUSES,
    assert_transition,
    can_cancel,
    can_reschedule,
    can_transition,
)
from cleaning_booking.services.booking_numbers import allocate_booking_number
from cleaning_booking.services.coupon_service import normalize_code, reserve_coupon
from cleaning_booking.services.pricing import (
    LineItemRequest,
    apply_discount,
    compute_pricing,
    resolve_line_items,
)

logger = get_logger(__name__)

TIME_SLOTS = tuple(slot.value for slot in TimeSlot)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_time_slot(slot: str) -> str:
    if slot not in TIME_SLOTS:
        raise InvalidTimeSlot(
            f"Invalid time slot '{slot}'",
            details={"allowed": list(TIME_SLOTS)},
        )
    return slot


def validate_schedule(scheduled_date: datetime, now: datetime) -> datetime:
    scheduled = as_utc(scheduled_date)
    if scheduled < now:
        raise ScheduleInPast("Scheduled date cannot be in the past")
    return scheduled


async def load_booking(db: AsyncSession, booking_id: int) -> Optional[Booking]:
    """Fetch a booking with its line items and staff, overwriting stale identity-map state."""
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_booking(db: AsyncSession, booking_id: int) -> Booking:
    booking = await load_booking(db, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


async def get_booking_for_user(db: AsyncSession, user: CurrentUser, booking_id: int) -> Booking:
    booking = await get_booking(db, booking_id)
    access.ensure_can_view_booking(user, booking)
    return booking


async def create_booking(
    db: AsyncSession,
    user: CurrentUser,
    data: BookingCreate,
    settings: Settings,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Price and persist a new pending booking for the caller.

    Every validation runs before the first write so a rejected request
    leaves nothing behind.
    """
    now = now or utcnow()
    slot = validate_time_slot(data.scheduled_time_slot)
    scheduled = validate_schedule(data.scheduled_date, now)

    snapshots = await resolve_line_items(
        db,
        [
            LineItemRequest(service_id=item.service_id, quantity=item.quantity, add_ons=tuple(item.add_ons))
            for item in data.services
        ],
    )
    pricing = compute_pricing(snapshots, settings.TAX_RATE)

    booking_number = await allocate_booking_number(db, settings.BOOKING_NUMBER_PREFIX, now.date())

    coupon_code = None
    if data.coupon_code:
        discount = await reserve_coupon(db, data.coupon_code, pricing.total, now)
        pricing = apply_discount(pricing, discount)
        coupon_code = normalize_code(data.coupon_code)

    address = data.service_address
    booking = Booking(
        booking_number=booking_number,
        customer_id=user.id,
        street=address.street,
        city=address.city,
        state=address.state,
        zip_code=address.zip_code,
        country=address.country,
        scheduled_date=scheduled,
        scheduled_time_slot=slot,
        special_instructions=data.special_instructions,
        subtotal=pricing.subtotal,
        tax=pricing.tax,
        discount=pricing.discount,
        total=pricing.total,
        coupon_code=coupon_code,
        status=BookingStatus.PENDING.value,
        is_cancelled=False,
        line_items=[
            BookingLineItem(
                position=position,
                service_id=item.service_id,
                service_name=item.service_name,
                quantity=item.quantity,
                base_price=item.base_price,
                add_ons=[{"name": a.name, "price": str(a.price)} for a in item.add_ons],
                subtotal=item.subtotal,
            )
            for position, item in enumerate(snapshots)
        ],
        staff_assignments=[],
    )
    db.add(booking)
    await db.flush()

    record_booking_operation("create", success=True)
    logger.info(
        "booking_created",
        booking_id=booking.id,
        booking_number=booking_number,
        customer_id=user.id,
        total=str(pricing.total),
        coupon=coupon_code,
    )
    return await get_booking(db, booking.id)


async def list_bookings(
    db: AsyncSession,
    user: CurrentUser,
    status: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[Booking], int]:
    """Bookings visible to the user, newest first, with the unpaged total."""
    query = access.scope_bookings(select(Booking), user)
    if status:
        query = query.where(Booking.status == status)
    if start_date:
        query = query.where(Booking.scheduled_date >= as_utc(start_date))
    if end_date:
        query = query.where(Booking.scheduled_date <= as_utc(end_date))

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(Booking.created_at.desc(), Booking.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total or 0


async def list_upcoming(
    db: AsyncSession,
    user: CurrentUser,
    hours: int = 24,
    now: Optional[datetime] = None,
) -> list[Booking]:
    """Confirmed or assigned bookings scheduled within the next `hours`."""
    now = now or utcnow()
    query = access.scope_bookings(select(Booking), user).where(
        Booking.scheduled_date >= now,
        Booking.scheduled_date <= now + timedelta(hours=hours),
        Booking.status.in_([BookingStatus.CONFIRMED.value, BookingStatus.ASSIGNED.value]),
    )
    result = await db.execute(query.order_by(Booking.scheduled_date.asc()))
    return list(result.scalars().all())


async def _apply_staff(db: AsyncSession, booking: Booking, requested: list[StaffAssignmentIn]) -> None:
    staff_ids = [item.staff_id for item in requested]
    if len(set(staff_ids)) != len(staff_ids):
        raise ValidationError("Staff members can only be assigned once per booking")

    if staff_ids:
        result = await db.execute(
            select(User.id).where(
                User.id.in_(staff_ids),
                User.is_active.is_(True),
                User.role.in_([UserRole.STAFF.value, UserRole.ADMIN.value]),
            )
        )
        found = set(result.scalars().all())
        missing = [sid for sid in staff_ids if sid not in found]
        if missing:
            raise ValidationError("Unknown or inactive staff members", details={"staff_ids": missing})

    roles = {item.staff_id: item.role for item in requested}
    kept = []
    for assignment in booking.staff_assignments:
        if assignment.staff_id in roles:
            assignment.role = roles.pop(assignment.staff_id)
            kept.append(assignment)
    # Existing rows are reused so the (booking_id, staff_id) unique key never sees a delete+insert pair
    booking.staff_assignments = kept + [
        BookingStaffAssignment(staff_id=staff_id, role=role) for staff_id, role in roles.items()
    ]


async def update_booking(
    db: AsyncSession,
    user: CurrentUser,
    booking_id: int,
    data: BookingUpdate,
    settings: Settings,
    now: Optional[datetime] = None,
) -> Booking:
    now = now or utcnow()
    booking = await get_booking(db, booking_id)
    access.ensure_can_modify_booking(user, booking)

    provided = data.model_fields_set
    denied = provided - access.writable_fields(user, booking)
    if denied:
        record_booking_operation("update", success=False)
        raise AuthorizationError(
            "Not allowed to change these fields",
            details={"fields": sorted(denied)},
        )

    if provided & access.SCHEDULE_FIELDS:
        if booking.status in TERMINAL_STATUSES:
            raise BookingNotReschedulable(f"A {booking.status} booking cannot be rescheduled")
        if user.is_customer and not can_reschedule(
            booking.status, booking.scheduled_date, now, settings.RESCHEDULE_WINDOW_HOURS
        ):
            raise BookingNotReschedulable(
                f"Bookings can only be rescheduled more than "
                f"{settings.RESCHEDULE_WINDOW_HOURS} hours in advance"
            )
        if "scheduled_date" in provided and data.scheduled_date is not None:
            booking.scheduled_date = validate_schedule(data.scheduled_date, now)
        if "scheduled_time_slot" in provided and data.scheduled_time_slot is not None:
            booking.scheduled_time_slot = validate_time_slot(data.scheduled_time_slot)

    if "special_instructions" in provided:
        booking.special_instructions = data.special_instructions

    if "service_address" in provided and data.service_address is not None:
        address = data.service_address
        booking.street = address.street
        booking.city = address.city
        booking.state = address.state
        booking.zip_code = address.zip_code
        booking.country = address.country

    if "assigned_staff" in provided:
        await _apply_staff(db, booking, data.assigned_staff or [])

    if "completion" in provided and data.completion is not None:
        for field in data.completion.model_fields_set:
            value = getattr(data.completion, field)
            setattr(booking, "completion_notes" if field == "notes" else field, value)

    if "status" in provided and data.status is not None and data.status != booking.status:
        assert_transition(booking.status, data.status)
        if data.status == COMPLETED:
            booking.completed_at = now
        elif data.status == CANCELLED:
            _mark_cancelled(booking, user.id, "Cancelled by staff", now)
        booking.status = data.status

    await db.flush()
    record_booking_operation("update", success=True)
    logger.info(
        "booking_updated",
        booking_id=booking.id,
        user_id=user.id,
        fields=sorted(provided),
        status=booking.status,
    )
    return await get_booking(db, booking.id)


def _mark_cancelled(booking: Booking, actor_id: Optional[int], reason: Optional[str], now: datetime) -> None:
    booking.status = CANCELLED
    booking.is_cancelled = True
    booking.cancelled_by = actor_id
    booking.cancelled_at = now
    booking.cancellation_reason = reason


async def cancel_booking(
    db: AsyncSession,
    user: CurrentUser,
    booking_id: int,
    settings: Settings,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Cancel a booking on behalf of its customer or an administrator.

    Customers are held to the cancellation window; administrators may
    cancel any booking the state machine still allows.
    """
    now = now or utcnow()
    booking = await get_booking(db, booking_id)
    access.ensure_can_modify_booking(user, booking)

    if booking.status == CANCELLED:
        raise BookingNotCancellable("Booking is already cancelled")

    if user.is_customer:
        allowed = can_cancel(booking.status, booking.scheduled_date, now, settings.CANCELLATION_WINDOW_HOURS)
    else:
        allowed = can_transition(booking.status, CANCELLED)
    if not allowed:
        record_booking_operation("cancel", success=False)
        logger.info("booking_cancel_rejected", booking_id=booking.id, status=booking.status)
        raise BookingNotCancellable(
            "Booking cannot be cancelled at this time",
            details={"status": booking.status},
        )

    _mark_cancelled(booking, user.id, reason or "Cancelled by customer", now)
    await db.flush()

    record_booking_operation("cancel", success=True)
    logger.info("booking_cancelled", booking_id=booking.id, user_id=user.id, reason=booking.cancellation_reason)
    return booking


async def assign_after_payment(db: AsyncSession, booking_id: int, payment_id: int) -> bool:
    """
    Link a successful payment to its booking and move it confirmed -> assigned.

    Returns True when this call made the status transition. Safe to call
    repeatedly for the same payment.
    A cancelled booking keeps its payment link; the capture is only logged.
    """
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == BookingStatus.CONFIRMED.value)
        .values(
            status=BookingStatus.ASSIGNED.value,
            payment_id=payment_id,
            version=Booking.version + 1,
        )
        .returning(Booking.id)
        .execution_options(synchronize_session=False)
    )
    if result.scalar_one_or_none() is not None:
        logger.info("booking_assigned_after_payment", booking_id=booking_id, payment_id=payment_id)
        return True

    await db.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.status != CANCELLED,
            or_(Booking.payment_id.is_(None), Booking.payment_id != payment_id),
        )
        .values(payment_id=payment_id, version=Booking.version + 1)
        .execution_options(synchronize_session=False)
    )

    row = (
        await db.execute(select(Booking.status, Booking.payment_id).where(Booking.id == booking_id))
    ).one_or_none()
    if row is not None and row.status == CANCELLED and row.payment_id != payment_id:
        # Money captured after cancellation has to be refunded by hand
        logger.error("payment_on_cancelled_booking", booking_id=booking_id, payment_id=payment_id)
    return False


async def record_refund(
    db: AsyncSession,
    booking_id: int,
    refunded_total: Decimal,
    actor_id: Optional[int],
    reason: Optional[str],
    now: Optional[datetime] = None,
) -> Booking:
    """
    Store the accumulated refund on the booking's cancellation record.

    Bookings that can still be cancelled become cancelled; in-progress and
    completed bookings keep their status and only record the amount.
    """
    now = now or utcnow()
    booking = await get_booking(db, booking_id)

    if booking.status != CANCELLED and booking.status not in (COMPLETED, BookingStatus.IN_PROGRESS.value):
        assert_transition(booking.status, CANCELLED)
        _mark_cancelled(booking, actor_id, reason or "Refund issued", now)
    booking.refund_amount = refunded_total

    await db.flush()
    logger.info(
        "booking_refund_recorded",
        booking_id=booking.id,
        status=booking.status,
        refund_amount=str(refunded_total),
    )
    return booking
