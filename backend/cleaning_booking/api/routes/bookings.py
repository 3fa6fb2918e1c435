"""
Booking endpoints.

Bookings are created pending; staff move them through the lifecycle with
PUT, and a successful payment moves a confirmed booking to assigned.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_booking.core.config import Settings, get_settings
from cleaning_booking.core.security import CurrentUser, get_current_user
from cleaning_booking.db.session import get_db
from cleaning_booking.models.booking import BookingStatus
from cleaning_booking.schemas.booking import (
    BookingCancelResponse,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingUpdate,
)
from cleaning_booking.services import booking_service

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Book one or more cleaning services.

    Prices come from the catalog at request time and are frozen into the
    booking; the booking number is allocated from a per-day counter.
    """
    return await booking_service.create_booking(db, user, booking_data, settings)


@router.get("/", response_model=BookingListResponse)
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Bookings visible to the caller: own, assigned, or all for admins."""
    bookings, total = await booking_service.list_bookings(
        db,
        user,
        status=status_filter.value if status_filter else None,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
    )
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/upcoming", response_model=list[BookingResponse])
async def list_upcoming_bookings(
    hours: int = Query(24, ge=1, le=24 * 30),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.list_upcoming(db, user, hours=hours)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.get_booking_for_user(db, user, booking_id)


@router.put("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: int,
    data: BookingUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Partially update a booking.

    Customers may reschedule or edit address and instructions; staff and
    admins may also change status, staff assignments and completion.
    Fields outside the caller's allowance are rejected with 403.
    """
    return await booking_service.update_booking(db, user, booking_id, data, settings)


@router.delete("/{booking_id}", response_model=BookingCancelResponse)
async def cancel_booking(
    booking_id: int,
    reason: Optional[str] = Query(None, max_length=500),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Cancel a booking. The record is kept with status cancelled."""
    booking = await booking_service.cancel_booking(db, user, booking_id, settings, reason=reason)
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        booking_id=booking.id,
        booking_number=booking.booking_number,
        status=booking.status,
    )
