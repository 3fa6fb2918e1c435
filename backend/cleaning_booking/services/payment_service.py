"""
Payment orchestration: checkout orders, client verification and gateway
webhooks.

CONCURRENCY STRATEGY: guard in the statement
============================================

Problem:
  The client's verify call and the gateway's payment.captured webhook
  often arrive together, and a customer can open two checkout orders for
  the same booking. Reading "is there a successful payment yet?" and then
  writing success races in every one of those cases.

Solution:
  Success is written by one conditional UPDATE:

    UPDATE payments SET status = 'success', ...
    WHERE id = :id
      AND status IN (<statuses ranked below success>)
      AND NOT EXISTS (SELECT 1 FROM payments p2
                      WHERE p2.booking_id = :booking AND p2.status = 'success'
                        AND p2.id != :id)

  Zero rows means someone else already got there: either this payment is
  already successful (a duplicate delivery, which is a no-op) or another
  payment for the booking won (PaymentAlreadyCompleted). The partial unique
  index on (booking_id) WHERE status = 'success' catches anything the
  guard cannot see under weaker isolation.

Monotonic status:
  Payment status ranks initiated < pending < failed/cancelled < success <
  refunded. Every webhook-driven change only moves a payment up that
  ranking, so redelivered or out-of-order events cannot undo a later state.
"""

import json
import secrets
import string
import time
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, case, exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from cleaning_booking.core.config import Settings
from cleaning_booking.core.exceptions import (
    AmountMismatch,
    AuthorizationError,
    BookingNotPayable,
    NotFoundError,
    PaymentAlreadyCompleted,
    SignatureVerificationFailed,
    ValidationError,
)
from cleaning_booking.core.logging import get_logger
from cleaning_booking.core.metrics import record_payment_event, record_webhook
from cleaning_booking.core.security import CurrentUser
from cleaning_booking.db.types import utcnow
from cleaning_booking.models.booking import BookingStatus
from cleaning_booking.models.payment import Payment, PaymentStatus, statuses_below
from cleaning_booking.services import access
from cleaning_booking.services.booking_service import assign_after_payment, get_booking
from cleaning_booking.services.gateways.base import (
    GatewayOrder,
    PaymentGateway,
    from_minor_units,
    verify_payment_signature,
    verify_webhook_signature,
)
from cleaning_booking.services.pricing import round_money
from cleaning_booking.services.refund_service import apply_refund

logger = get_logger(__name__)

SUCCESS = PaymentStatus.SUCCESS.value
REFUNDED = PaymentStatus.REFUNDED.value
FAILED = PaymentStatus.FAILED.value

PAYMENT_METHODS = [
    {"id": "upi", "name": "UPI", "description": "Pay using Google Pay, PhonePe, Paytm, or any UPI app"},
    {"id": "card", "name": "Credit/Debit Card", "description": "Visa, Mastercard, RuPay, and American Express"},
    {"id": "netbanking", "name": "Net Banking", "description": "All major Indian banks supported"},
    {"id": "wallet", "name": "Wallets", "description": "Paytm, Mobikwik, Freecharge, and more"},
]

_TXN_ALPHABET = string.ascii_uppercase + string.digits


def generate_transaction_id() -> str:
    suffix = "".join(secrets.choice(_TXN_ALPHABET) for _ in range(6))
    return f"TXN{int(time.time() * 1000)}{suffix}"


async def get_payment(db: AsyncSession, payment_id: int) -> Payment:
    result = await db.execute(
        select(Payment)
        .where(Payment.id == payment_id)
        .execution_options(populate_existing=True)
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFoundError("Payment not found")
    return payment


async def get_payment_for_user(db: AsyncSession, user: CurrentUser, payment_id: int) -> Payment:
    payment = await get_payment(db, payment_id)
    access.ensure_can_view_payment(user, payment)
    return payment


async def get_payment_by_order_id(db: AsyncSession, order_id: str) -> Optional[Payment]:
    result = await db.execute(select(Payment).where(Payment.gateway_order_id == order_id))
    return result.scalar_one_or_none()


async def list_payments_for_booking(db: AsyncSession, user: CurrentUser, booking_id: int) -> list[Payment]:
    booking = await get_booking(db, booking_id)
    if not (user.is_admin or (user.is_customer and booking.customer_id == user.id)):
        raise AuthorizationError("Not authorized to view payments for this booking")

    result = await db.execute(
        select(Payment)
        .where(Payment.booking_id == booking_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
    )
    return list(result.scalars().all())


async def create_order(
    db: AsyncSession,
    user: CurrentUser,
    booking_id: int,
    amount,
    gateway: PaymentGateway,
    settings: Settings,
) -> tuple[Payment, GatewayOrder]:
    """Open a gateway order for a confirmed booking and record an initiated payment."""
    booking = await get_booking(db, booking_id)
    if booking.customer_id != user.id:
        raise AuthorizationError("Not authorized to pay for this booking")

    if booking.status != BookingStatus.CONFIRMED.value:
        raise BookingNotPayable(
            "Booking must be confirmed before payment",
            details={"status": booking.status},
        )

    amount = round_money(amount)
    if amount != booking.total:
        raise AmountMismatch(
            "Payment amount does not match the booking total",
            details={"expected": str(booking.total), "received": str(amount)},
        )

    already_paid = await db.scalar(
        select(Payment.id).where(
            Payment.booking_id == booking_id,
            Payment.status.in_([SUCCESS, REFUNDED]),
        ).limit(1)
    )
    if already_paid is not None:
        raise PaymentAlreadyCompleted("Payment already completed for this booking")

    order = await gateway.create_order(
        amount,
        settings.CURRENCY,
        receipt=f"booking_{booking.booking_number}",
        notes={"booking_id": str(booking.id), "customer_id": str(user.id)},
    )

    payment = Payment(
        transaction_id=generate_transaction_id(),
        booking_id=booking.id,
        customer_id=user.id,
        amount=amount,
        currency=settings.CURRENCY,
        payment_method="razorpay",
        gateway=gateway.name,
        gateway_order_id=order.order_id,
        status=PaymentStatus.INITIATED.value,
        is_refunded=False,
    )
    db.add(payment)
    await db.flush()

    logger.info(
        "payment_order_created",
        payment_id=payment.id,
        booking_id=booking.id,
        order_id=order.order_id,
        amount=str(amount),
    )
    return payment, order


async def mark_payment_success(
    db: AsyncSession,
    payment: Payment,
    gateway_payment_id: str,
    signature: Optional[str] = None,
    source: str = "verify",
) -> bool:
    """
    Move a payment to success if no payment for its booking has succeeded.

    Returns True when this call applied the change and False when the
    payment was already successful. Must be the first write of the
    transaction: an index violation rolls the session back.
    """
    other = aliased(Payment)
    values = {
        # A refund.processed delivered before the capture leaves the payment fully refunded
        "status": case((Payment.refund_amount >= Payment.amount, REFUNDED), else_=SUCCESS),
        "gateway_transaction_id": gateway_payment_id,
    }
    if signature is not None:
        values["gateway_signature"] = signature

    stmt = (
        update(Payment)
        .where(
            Payment.id == payment.id,
            Payment.status.in_(statuses_below(SUCCESS)),
            ~exists().where(
                and_(
                    other.booking_id == payment.booking_id,
                    other.status == SUCCESS,
                    other.id != payment.id,
                )
            ),
        )
        .values(**values)
        .returning(Payment.id)
        .execution_options(synchronize_session=False)
    )
    try:
        applied = (await db.execute(stmt)).scalar_one_or_none() is not None
    except IntegrityError:
        await db.rollback()
        record_payment_event(source, "conflict")
        logger.warning("payment_success_conflict", payment_id=payment.id, booking_id=payment.booking_id)
        raise PaymentAlreadyCompleted("Payment already completed for this booking")

    await db.refresh(payment)
    if applied:
        record_payment_event(source, "success")
        logger.info(
            "payment_succeeded",
            payment_id=payment.id,
            booking_id=payment.booking_id,
            gateway_payment_id=gateway_payment_id,
            source=source,
        )
        return True

    if payment.status in (SUCCESS, REFUNDED):
        record_payment_event(source, "duplicate")
        return False

    record_payment_event(source, "conflict")
    raise PaymentAlreadyCompleted("Payment already completed for this booking")


async def verify_payment(
    db: AsyncSession,
    user: CurrentUser,
    order_id: str,
    gateway_payment_id: str,
    signature: str,
    booking_id: int,
    settings: Settings,
) -> Payment:
    """Confirm a checkout from the client-side signature and assign the booking."""
    if not verify_payment_signature(settings.RAZORPAY_KEY_SECRET, order_id, gateway_payment_id, signature):
        record_payment_event("verify", "invalid_signature")
        logger.warning("payment_signature_invalid", order_id=order_id, booking_id=booking_id)
        raise SignatureVerificationFailed("Payment verification failed")

    payment = await get_payment_by_order_id(db, order_id)
    if payment is None:
        raise NotFoundError("Payment record not found")
    if payment.booking_id != booking_id:
        raise ValidationError("Payment does not belong to this booking")
    if not user.is_admin and payment.customer_id != user.id:
        raise AuthorizationError("Not authorized to verify this payment")

    applied = await mark_payment_success(db, payment, gateway_payment_id, signature, source="verify")
    if not applied and payment.gateway_transaction_id != gateway_payment_id:
        raise PaymentAlreadyCompleted("Payment already completed with a different transaction")

    await assign_after_payment(db, payment.booking_id, payment.id)
    logger.info("payment_verified", payment_id=payment.id, booking_id=booking_id, applied=applied)
    return payment


def _entity(payload: dict, kind: str) -> dict:
    try:
        entity = payload["payload"][kind]["entity"]
    except (KeyError, TypeError):
        raise ValidationError(f"Webhook payload has no {kind} entity")
    if not isinstance(entity, dict) or not entity.get("id"):
        raise ValidationError(f"Webhook {kind} entity has no id")
    return entity


async def _on_payment_captured(db: AsyncSession, payload: dict, now: datetime) -> str:
    entity = _entity(payload, "payment")
    payment = await get_payment_by_order_id(db, entity.get("order_id") or "")
    if payment is None:
        logger.info("webhook_unknown_payment", order_id=entity.get("order_id"))
        return "unknown_payment"

    try:
        applied = await mark_payment_success(db, payment, entity["id"], source="webhook")
    except PaymentAlreadyCompleted:
        # Captured money on a second order for an already paid booking; needs a manual refund
        logger.error(
            "webhook_duplicate_capture",
            order_id=entity.get("order_id"),
            gateway_payment_id=entity["id"],
        )
        return "ignored"

    await assign_after_payment(db, payment.booking_id, payment.id)
    return "applied" if applied else "duplicate"


async def _on_payment_failed(db: AsyncSession, payload: dict, now: datetime) -> str:
    entity = _entity(payload, "payment")
    result = await db.execute(
        update(Payment)
        .where(
            Payment.gateway_order_id == (entity.get("order_id") or ""),
            Payment.status.in_(statuses_below(FAILED)),
        )
        .values(status=FAILED, gateway_transaction_id=entity["id"])
        .returning(Payment.id)
        .execution_options(synchronize_session=False)
    )
    payment_id = result.scalar_one_or_none()
    if payment_id is None:
        return "ignored"

    record_payment_event("webhook", "failed")
    logger.info(
        "payment_failed",
        payment_id=payment_id,
        error=entity.get("error_description"),
    )
    return "applied"


async def _on_refund_processed(db: AsyncSession, payload: dict, now: datetime) -> str:
    entity = _entity(payload, "refund")
    amount = entity.get("amount")
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValidationError("Webhook refund entity has no valid amount")

    result = await db.execute(
        select(Payment).where(Payment.gateway_transaction_id == entity.get("payment_id"))
    )
    payment = result.scalar_one_or_none()
    if payment is None and entity.get("order_id"):
        # Refund can arrive before the capture that names the gateway payment
        payment = await get_payment_by_order_id(db, entity["order_id"])
    if payment is None:
        logger.info(
            "webhook_unknown_payment",
            gateway_payment_id=entity.get("payment_id"),
            order_id=entity.get("order_id"),
        )
        return "unknown_payment"

    notes = entity.get("notes") or {}
    applied = await apply_refund(
        db,
        payment,
        gateway_refund_id=entity["id"],
        amount=from_minor_units(amount),
        reason=notes.get("reason") if isinstance(notes, dict) else None,
        actor_id=None,
        source="webhook",
        now=now,
    )
    return "applied" if applied else "duplicate"


WEBHOOK_HANDLERS = {
    "payment.captured": _on_payment_captured,
    "payment.failed": _on_payment_failed,
    "refund.processed": _on_refund_processed,
}


async def handle_webhook(
    db: AsyncSession,
    raw_body: bytes,
    signature: Optional[str],
    settings: Settings,
    now: Optional[datetime] = None,
) -> str:
    """
    Authenticate and apply one gateway webhook delivery.

    The signature is checked against the exact bytes received before the
    body is parsed. Returns the outcome label; unknown events and payments
    are acknowledged so the gateway stops redelivering them.
    """
    if not verify_webhook_signature(settings.RAZORPAY_WEBHOOK_SECRET, raw_body, signature):
        record_webhook("unknown", "rejected")
        logger.warning("webhook_signature_invalid", has_signature=bool(signature))
        raise SignatureVerificationFailed("Invalid webhook signature")

    try:
        payload = json.loads(raw_body)
    except ValueError:
        record_webhook("unknown", "rejected")
        raise ValidationError("Malformed webhook payload")
    if not isinstance(payload, dict):
        raise ValidationError("Malformed webhook payload")

    event = payload.get("event")
    handler = WEBHOOK_HANDLERS.get(event)
    if handler is None:
        record_webhook(event, "ignored")
        logger.info("webhook_event_ignored", webhook_event=event)
        return "ignored"

    outcome = await handler(db, payload, now or utcnow())
    record_webhook(event, outcome)
    logger.info("webhook_processed", webhook_event=event, outcome=outcome)
    return outcome
