"""
Refund coordination.

IDEMPOTENCY
===========

A refund is identified by the gateway's refund id. The id is unique in
`payment_refunds`, so however a refund reaches us (the admin API, a retry
of that call, or the gateway's refund.processed webhook) it is applied to
the payment at most once.

The admin API passes the request's Idempotency-Key on to the gateway. The
gateway answers a repeated key with the refund it already made, which
gives the retry the same refund id and turns it into a no-op here.
Without a key, one is derived from the payment and how many refunds it
already has, so a retry after a lost response still lines up with the
original call.

The payment's running refund total is accumulated inside a guarded
UPDATE, so refunds committed by other sessions are never overwritten.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_booking.core.exceptions import NotFoundError, NotRefundable, RefundExceedsPayment
from cleaning_booking.core.logging import get_logger
from cleaning_booking.core.metrics import refunds_processed
from cleaning_booking.core.security import CurrentUser
from cleaning_booking.db.types import Money, utcnow
from cleaning_booking.models.booking import Booking
from cleaning_booking.models.payment import Payment, PaymentRefund, PaymentStatus
from cleaning_booking.services.booking_service import record_refund
from cleaning_booking.services.gateways.base import PaymentGateway
from cleaning_booking.services.pricing import round_money

logger = get_logger(__name__)

SUCCESS = PaymentStatus.SUCCESS.value
REFUNDED = PaymentStatus.REFUNDED.value


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    amount: Decimal
    applied: bool
    payment: Payment
    booking: Booking


async def _refund_exists(db: AsyncSession, gateway_refund_id: str) -> bool:
    result = await db.execute(
        select(PaymentRefund.id).where(PaymentRefund.gateway_refund_id == gateway_refund_id)
    )
    return result.scalar_one_or_none() is not None


async def apply_refund(
    db: AsyncSession,
    payment: Payment,
    gateway_refund_id: str,
    amount: Decimal,
    reason: Optional[str],
    actor_id: Optional[int],
    source: str,
    now: Optional[datetime] = None,
) -> bool:
    """
    Record one gateway refund against a payment.

    Returns False when the refund id has been recorded before. Must be the
    first write of the transaction: a concurrent insert of the same refund
    id rolls the session back.
    """
    if await _refund_exists(db, gateway_refund_id):
        refunds_processed.labels(kind="duplicate").inc()
        logger.info("refund_already_recorded", payment_id=payment.id, refund_id=gateway_refund_id)
        return False

    now = now or utcnow()
    amount = round_money(amount)

    db.add(
        PaymentRefund(
            payment_id=payment.id,
            gateway_refund_id=gateway_refund_id,
            amount=amount,
            reason=reason,
            processed_by=actor_id,
            source=source,
            created_at=now,
        )
    )
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        refunds_processed.labels(kind="duplicate").inc()
        logger.info("refund_recorded_concurrently", payment_id=payment.id, refund_id=gateway_refund_id)
        return False

    # Accumulate against the stored total, never the loaded one
    new_total = func.round(Payment.refund_amount + amount, 2, type_=Money())
    result = await db.execute(
        update(Payment)
        .where(Payment.id == payment.id, new_total <= Payment.amount)
        .values(
            refund_amount=new_total,
            is_refunded=True,
            refund_transaction_id=gateway_refund_id,
            refunded_at=now,
            refund_reason=func.coalesce(reason, Payment.refund_reason),
            refund_processed_by=actor_id,
            status=case(
                (and_(Payment.status == SUCCESS, new_total >= Payment.amount), REFUNDED),
                else_=Payment.status,
            ),
        )
        .returning(Payment.refund_amount)
        .execution_options(synchronize_session=False)
    )
    refunded_total = result.scalar_one_or_none()
    if refunded_total is None:
        logger.error(
            "refund_exceeds_payment",
            payment_id=payment.id,
            refund_id=gateway_refund_id,
            amount=str(amount),
        )
        raise RefundExceedsPayment(
            "Refunds would exceed the payment amount",
            details={"payment_id": payment.id, "refund_id": gateway_refund_id},
        )

    await db.refresh(payment)
    kind = "full" if refunded_total >= payment.amount else "partial"
    refunds_processed.labels(kind=kind).inc()
    logger.info(
        "refund_recorded",
        payment_id=payment.id,
        refund_id=gateway_refund_id,
        amount=str(amount),
        refunded_total=str(refunded_total),
        source=source,
    )
    return True


async def process_refund(
    db: AsyncSession,
    gateway: PaymentGateway,
    actor: CurrentUser,
    payment_id: int,
    amount: Decimal,
    reason: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RefundResult:
    """Refund part or all of a successful payment and cancel its booking."""
    now = now or utcnow()
    result = await db.execute(
        select(Payment).where(Payment.id == payment_id).execution_options(populate_existing=True)
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFoundError("Payment not found")

    amount = round_money(amount)
    if payment.status != PaymentStatus.SUCCESS.value or payment.refundable_amount <= 0:
        raise NotRefundable(
            "Only successful payments with a remaining balance can be refunded",
            details={"status": payment.status},
        )
    if amount > payment.refundable_amount:
        raise RefundExceedsPayment(
            "Refund amount exceeds the refundable amount",
            details={"requested": str(amount), "refundable": str(payment.refundable_amount)},
        )
    if not payment.gateway_transaction_id:
        raise NotRefundable("Payment has no captured gateway transaction")

    refund_key = idempotency_key or f"refund_{payment.transaction_id}_{len(payment.refunds) + 1}"
    refund = await gateway.refund(
        payment.gateway_transaction_id,
        amount,
        idempotency_key=refund_key,
        notes={"reason": reason or "Refund requested", "payment_id": str(payment.id)},
    )

    applied = await apply_refund(
        db,
        payment,
        gateway_refund_id=refund.refund_id,
        amount=amount,
        reason=reason,
        actor_id=actor.id,
        source="api",
        now=now,
    )
    if not applied:
        await db.refresh(payment)

    booking = await record_refund(db, payment.booking_id, payment.refund_amount, actor.id, reason, now)

    logger.info(
        "refund_processed",
        payment_id=payment.id,
        refund_id=refund.refund_id,
        applied=applied,
        payment_status=payment.status,
        booking_status=booking.status,
    )
    return RefundResult(
        refund_id=refund.refund_id,
        amount=amount,
        applied=applied,
        payment=payment,
        booking=booking,
    )
