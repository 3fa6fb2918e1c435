"""
Pydantic schemas for coupons.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from cleaning_booking.schemas.common import Money


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=40)
    name: str = Field(..., min_length=1, max_length=100)
    discount_type: Literal["percentage", "fixed"]
    discount_value: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    minimum_order_value: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    maximum_discount: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    usage_limit: Optional[int] = Field(None, ge=1)
    valid_from: datetime
    valid_until: datetime
    is_active: bool = True

    @model_validator(mode="after")
    def check_window(self):
        if self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("percentage discount cannot exceed 100")
        return self


class CouponResponse(BaseModel):
    id: int
    code: str
    name: str
    discount_type: str
    discount_value: Money
    minimum_order_value: Money
    maximum_discount: Optional[Money]
    usage_limit: Optional[int]
    usage_count: int
    valid_from: datetime
    valid_until: datetime
    is_active: bool

    model_config = {"from_attributes": True}


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=40)
    order_total: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)


class CouponValidateResponse(BaseModel):
    code: str
    valid: bool
    discount: Money
