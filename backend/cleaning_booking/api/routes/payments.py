"""
Payment endpoints: checkout, verification, gateway webhooks and refunds.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_booking.core.config import Settings, get_settings
from cleaning_booking.core.security import CurrentUser, get_current_user, require_roles
from cleaning_booking.db.session import get_db
from cleaning_booking.models.user import UserRole
from cleaning_booking.schemas.payment import (
    CreateOrderRequest,
    CreateOrderResponse,
    PaymentMethod,
    PaymentResponse,
    RefundRequest,
    RefundResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from cleaning_booking.services import payment_service, refund_service
from cleaning_booking.services.gateways import PaymentGateway, get_payment_gateway

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/methods", response_model=list[PaymentMethod])
async def list_payment_methods():
    return payment_service.PAYMENT_METHODS


@router.post("/create-order", response_model=CreateOrderResponse)
async def create_order(
    data: CreateOrderRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
):
    """Open a checkout order for a confirmed booking."""
    payment, order = await payment_service.create_order(
        db, user, data.booking_id, data.amount, gateway, settings
    )
    return CreateOrderResponse(
        order_id=order.order_id,
        amount=payment.amount,
        currency=payment.currency,
        payment_id=payment.id,
        transaction_id=payment.transaction_id,
        key_id=gateway.key_id,
    )


@router.post("/verify", response_model=VerifyPaymentResponse)
async def verify_payment(
    data: VerifyPaymentRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Verify the checkout signature returned to the client."""
    payment = await payment_service.verify_payment(
        db,
        user,
        order_id=data.order_id,
        gateway_payment_id=data.payment_id,
        signature=data.signature,
        booking_id=data.booking_id,
        settings=settings,
    )
    return VerifyPaymentResponse(
        payment_id=payment.id,
        transaction_id=payment.transaction_id,
        status=payment.status,
    )


@router.post("/webhook", response_class=PlainTextResponse)
async def payment_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Gateway webhook receiver.

    Authenticated by the HMAC signature over the raw body, not by a user
    token. Answers 200 "OK" for every authentic delivery, including events
    we do not act on, so the gateway stops retrying them.
    """
    raw_body = await request.body()
    await payment_service.handle_webhook(db, raw_body, x_razorpay_signature, settings)
    return PlainTextResponse("OK")


@router.get("/booking/{booking_id}", response_model=list[PaymentResponse])
async def list_booking_payments(
    booking_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.list_payments_for_booking(db, user, booking_id)


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.get_payment_for_user(db, user, payment_id)


@router.post("/{payment_id}/refund", response_model=RefundResponse)
async def refund_payment(
    payment_id: int,
    data: RefundRequest,
    idempotency_key: Optional[str] = Header(None, max_length=64),
    admin: CurrentUser = Depends(require_roles(UserRole.ADMIN.value)),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Refund part or all of a successful payment (admin only).

    Send an Idempotency-Key header to make retries safe: a repeated key
    returns the original refund instead of refunding again.
    """
    result = await refund_service.process_refund(
        db,
        gateway,
        admin,
        payment_id,
        data.amount,
        reason=data.reason,
        idempotency_key=idempotency_key,
    )
    return RefundResponse(
        refund_id=result.refund_id,
        amount=result.amount,
        refunded_total=result.payment.refund_amount,
        payment_status=result.payment.status,
        booking_status=result.booking.status,
    )
