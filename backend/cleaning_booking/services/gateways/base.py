"""
Gateway interface and the HMAC signature checks shared by every adapter.

Amounts cross this boundary as Decimal in major units; adapters convert to
the gateway's minor units (paise) themselves.
"""

import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

PAISE_PER_RUPEE = 100


@dataclass(frozen=True)
class GatewayOrder:
    order_id: str
    amount: Decimal
    currency: str
    receipt: str


@dataclass(frozen=True)
class GatewayRefund:
    refund_id: str
    payment_id: str
    amount: Decimal
    status: str


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * PAISE_PER_RUPEE).to_integral_value())


def from_minor_units(value: int) -> Decimal:
    return (Decimal(value) / PAISE_PER_RUPEE).quantize(Decimal("0.01"))


def compute_signature(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _signatures_match(expected: str, supplied: str) -> bool:
    # compare_digest refuses non-ASCII str, so compare the raw bytes
    return hmac.compare_digest(expected.encode("ascii"), supplied.encode("utf-8", "surrogateescape"))


def verify_payment_signature(secret: str, order_id: str, payment_id: str, signature: str) -> bool:
    """Checkout signature: HMAC-SHA256 of "<order_id>|<payment_id>"."""
    expected = compute_signature(secret, f"{order_id}|{payment_id}".encode("utf-8"))
    return _signatures_match(expected, signature or "")


def verify_webhook_signature(secret: str, raw_body: bytes, signature: Optional[str]) -> bool:
    """Webhook signature: HMAC-SHA256 of the raw request body, hex encoded."""
    if not signature:
        return False
    expected = compute_signature(secret, raw_body)
    return _signatures_match(expected, signature)


class PaymentGateway(ABC):
    """
    Abstract base for payment gateway adapters.

    Implementations raise GatewayTimeout, GatewayUnavailable or
    GatewayRejected; they never return partial results.
    """

    name: str = "gateway"

    @property
    def key_id(self) -> Optional[str]:
        """Public key handed to the checkout client, if any."""
        return None

    @abstractmethod
    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: Optional[dict] = None,
    ) -> GatewayOrder:
        """Create a checkout order for `amount`."""
        pass

    @abstractmethod
    async def refund(
        self,
        payment_id: str,
        amount: Decimal,
        idempotency_key: str,
        notes: Optional[dict] = None,
    ) -> GatewayRefund:
        """
        Refund part or all of a captured payment.

        Repeating a call with the same payment and idempotency key must not
        refund twice; the gateway answers with the refund it already made.
        """
        pass
