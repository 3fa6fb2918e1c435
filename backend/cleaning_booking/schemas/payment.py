"""
Pydantic schemas for checkout, verification and refunds.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from cleaning_booking.schemas.common import Money, PositiveAmount


class CreateOrderRequest(BaseModel):
    booking_id: int
    amount: PositiveAmount


class CreateOrderResponse(BaseModel):
    order_id: str
    amount: Money
    currency: str
    payment_id: int
    transaction_id: str
    key_id: Optional[str] = None


class VerifyPaymentRequest(BaseModel):
    order_id: str = Field(..., min_length=1)
    payment_id: str = Field(..., min_length=1, description="Gateway payment id")
    signature: str = Field(..., min_length=1)
    booking_id: int


class VerifyPaymentResponse(BaseModel):
    payment_id: int
    transaction_id: str
    status: str


class RefundOut(BaseModel):
    gateway_refund_id: str
    amount: Money
    reason: Optional[str]
    source: str
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    id: int
    transaction_id: str
    booking_id: int
    customer_id: int
    amount: Money
    formatted_amount: str
    currency: str
    payment_method: str
    gateway: str
    gateway_order_id: Optional[str]
    gateway_transaction_id: Optional[str]
    status: str
    is_refunded: bool
    is_fully_refunded: bool
    refund_amount: Money
    refunded_at: Optional[datetime]
    refund_reason: Optional[str]
    refunds: list[RefundOut]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RefundRequest(BaseModel):
    amount: PositiveAmount
    reason: Optional[str] = Field(None, max_length=500)


class RefundResponse(BaseModel):
    refund_id: str
    amount: Money
    refunded_total: Money
    payment_status: str
    booking_status: str


class PaymentMethod(BaseModel):
    id: str
    name: str
    description: str
    enabled: bool = True
