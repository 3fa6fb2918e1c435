"""
In-process gateway for development and tests.

Orders get random ids; refund ids are derived from (payment id, idempotency
key) so a retried refund with the same key returns the same refund, the
way the real gateway deduplicates on its idempotency header.
"""

import hashlib
import secrets
from decimal import Decimal
from typing import Optional

from cleaning_booking.core.logging import get_logger

from .base import GatewayOrder, GatewayRefund, PaymentGateway, compute_signature

logger = get_logger(__name__)


class SandboxGateway(PaymentGateway):
    name = "sandbox"

    def __init__(self, key_secret: str, key_id: Optional[str] = None):
        self._key_secret = key_secret
        self._key_id = key_id or "rzp_test_sandbox"
        self.orders: dict[str, GatewayOrder] = {}
        self.refunds: dict[str, GatewayRefund] = {}

    @property
    def key_id(self) -> Optional[str]:
        return self._key_id

    async def create_order(self, amount, currency, receipt, notes=None) -> GatewayOrder:
        order = GatewayOrder(
            order_id=f"order_{secrets.token_hex(7)}",
            amount=Decimal(amount),
            currency=currency,
            receipt=receipt,
        )
        self.orders[order.order_id] = order
        logger.debug("sandbox_order_created", order_id=order.order_id, receipt=receipt)
        return order

    async def refund(self, payment_id, amount, idempotency_key, notes=None) -> GatewayRefund:
        digest = hashlib.sha256(f"{payment_id}|{idempotency_key}".encode("utf-8")).hexdigest()
        refund_id = f"rfnd_{digest[:14]}"
        if refund_id not in self.refunds:
            self.refunds[refund_id] = GatewayRefund(
                refund_id=refund_id,
                payment_id=payment_id,
                amount=Decimal(amount),
                status="processed",
            )
        logger.debug("sandbox_refund", refund_id=refund_id, payment_id=payment_id)
        return self.refunds[refund_id]

    def sign_payment(self, order_id: str, payment_id: str) -> str:
        """Signature the checkout client would receive for a captured payment."""
        return compute_signature(self._key_secret, f"{order_id}|{payment_id}".encode("utf-8"))
