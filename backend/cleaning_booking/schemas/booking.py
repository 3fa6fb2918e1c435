"""
Pydantic schemas for booking-related request/response validation.

Time slot, quantity and schedule rules are checked by the booking service so
they surface as domain errors (400) rather than schema errors (422).
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from cleaning_booking.schemas.common import Money


class LineItemIn(BaseModel):
    service_id: int
    quantity: int = 1
    add_ons: list[str] = Field(default_factory=list)


class ServiceAddress(BaseModel):
    street: str = Field(..., min_length=5, max_length=255)
    city: str = Field(..., min_length=2, max_length=100)
    state: str = Field(..., min_length=2, max_length=100)
    zip_code: str = Field(..., pattern=r"^\d{6}$")
    country: str = Field("India", max_length=100)


class BookingCreate(BaseModel):
    services: list[LineItemIn] = Field(..., min_length=1)
    service_address: ServiceAddress
    scheduled_date: datetime
    scheduled_time_slot: str
    special_instructions: Optional[str] = Field(None, max_length=500)
    coupon_code: Optional[str] = Field(None, max_length=40)


class StaffAssignmentIn(BaseModel):
    staff_id: int
    role: Literal["lead", "helper"] = "helper"


class CompletionIn(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)
    rating: Optional[int] = Field(None, ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=2000)


class BookingUpdate(BaseModel):
    """Partial update; only fields present in the request body are applied."""

    scheduled_date: Optional[datetime] = None
    scheduled_time_slot: Optional[str] = None
    special_instructions: Optional[str] = Field(None, max_length=500)
    service_address: Optional[ServiceAddress] = None
    status: Optional[str] = None
    assigned_staff: Optional[list[StaffAssignmentIn]] = None
    completion: Optional[CompletionIn] = None


class AddOnOut(BaseModel):
    name: str
    price: Money


class LineItemOut(BaseModel):
    service_id: int
    service_name: str
    quantity: int
    base_price: Money
    add_ons: list[AddOnOut]
    subtotal: Money

    model_config = {"from_attributes": True}


class PricingOut(BaseModel):
    subtotal: Money
    tax: Money
    discount: Money
    total: Money


class StaffAssignmentOut(BaseModel):
    staff_id: int
    role: str
    assigned_at: datetime

    model_config = {"from_attributes": True}


class CompletionOut(BaseModel):
    completed_at: Optional[datetime]
    notes: Optional[str]
    rating: Optional[int]
    feedback: Optional[str]


class CancellationOut(BaseModel):
    cancelled_by: Optional[int]
    cancelled_at: Optional[datetime]
    reason: Optional[str]
    refund_amount: Optional[Money]


class BookingResponse(BaseModel):
    id: int
    booking_number: str
    customer_id: int
    line_items: list[LineItemOut]
    service_address: ServiceAddress
    scheduled_date: datetime
    scheduled_time_slot: str
    special_instructions: Optional[str]
    pricing: PricingOut
    coupon_code: Optional[str]
    status: str
    staff_assignments: list[StaffAssignmentOut]
    completion: Optional[CompletionOut]
    cancellation: Optional[CancellationOut]
    payment_id: Optional[int]
    estimated_duration_minutes: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]
    total: int
    page: int
    page_size: int


class BookingCancelResponse(BaseModel):
    message: str
    booking_id: int
    booking_number: str
    status: str
