"""
Pydantic schemas for the service catalog.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from cleaning_booking.schemas.common import Money

ServiceCategory = Literal[
    "residential", "commercial", "deep_cleaning", "move_in_out",
    "post_construction", "office", "specialty",
]


class AddOn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)


class ServiceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category: ServiceCategory
    description: Optional[str] = Field(None, max_length=1000)
    base_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    currency: Literal["INR", "USD", "EUR"] = "INR"
    duration_minutes: int = Field(60, ge=30)
    add_ons: list[AddOn] = Field(default_factory=list)
    is_active: bool = True


class ServiceUpdate(BaseModel):
    """Partial update; the slug stays fixed when the name changes."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    category: Optional[ServiceCategory] = None
    description: Optional[str] = Field(None, max_length=1000)
    base_price: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    currency: Optional[Literal["INR", "USD", "EUR"]] = None
    duration_minutes: Optional[int] = Field(None, ge=30)
    add_ons: Optional[list[AddOn]] = None
    is_active: Optional[bool] = None


class AddOnResponse(BaseModel):
    name: str
    price: Money


class ServiceResponse(BaseModel):
    id: int
    name: str
    slug: str
    category: str
    description: Optional[str]
    base_price: Money
    currency: str
    duration_minutes: int
    add_ons: list[AddOnResponse]
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
