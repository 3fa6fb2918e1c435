"""
Razorpay REST adapter.

Every call is bounded by GATEWAY_TIMEOUT_SECONDS. Failures map onto the
gateway error family:
  - timeout                      -> GatewayTimeout (504)
  - connection error, 429, 5xx   -> GatewayUnavailable (503)
  - any other 4xx                -> GatewayRejected (502)

Refunds carry their idempotency key in the X-Refund-Idempotency header.
"""

import time
from decimal import Decimal
from typing import Optional

import httpx

from cleaning_booking.core.exceptions import GatewayRejected, GatewayTimeout, GatewayUnavailable
from cleaning_booking.core.logging import get_logger
from cleaning_booking.core.metrics import gateway_errors, gateway_latency

from .base import GatewayOrder, GatewayRefund, PaymentGateway, from_minor_units, to_minor_units

logger = get_logger(__name__)

# Razorpay deduplicates refunds on this header, not on the receipt field
REFUND_IDEMPOTENCY_HEADER = "X-Refund-Idempotency"


class RazorpayGateway(PaymentGateway):
    name = "razorpay"

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        api_base: str = "https://api.razorpay.com/v1",
        timeout: float = 10.0,
    ):
        self._key_id = key_id
        self._key_secret = key_secret
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout

    @property
    def key_id(self) -> Optional[str]:
        return self._key_id

    async def _post(self, operation: str, path: str, payload: dict, headers: Optional[dict] = None) -> dict:
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                base_url=self._api_base,
                auth=(self._key_id, self._key_secret),
                timeout=self._timeout,
            ) as client:
                response = await client.post(path, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            gateway_errors.labels(operation=operation, kind="timeout").inc()
            logger.error("gateway_timeout", operation=operation, error=str(e))
            raise GatewayTimeout("Payment gateway timed out") from e
        except httpx.HTTPError as e:
            gateway_errors.labels(operation=operation, kind="unavailable").inc()
            logger.error("gateway_unreachable", operation=operation, error=str(e))
            raise GatewayUnavailable("Payment gateway is unavailable") from e
        finally:
            gateway_latency.labels(operation=operation).observe(time.perf_counter() - start)

        if response.status_code == 429 or response.status_code >= 500:
            gateway_errors.labels(operation=operation, kind="unavailable").inc()
            logger.error("gateway_unavailable", operation=operation, status=response.status_code)
            raise GatewayUnavailable(
                "Payment gateway is unavailable",
                details={"gateway_status": response.status_code},
            )
        if response.status_code >= 400:
            gateway_errors.labels(operation=operation, kind="rejected").inc()
            description = _error_description(response)
            logger.warning(
                "gateway_rejected",
                operation=operation,
                status=response.status_code,
                description=description,
            )
            raise GatewayRejected(
                description or "Payment gateway rejected the request",
                details={"gateway_status": response.status_code},
            )
        return response.json()

    async def create_order(self, amount, currency, receipt, notes=None) -> GatewayOrder:
        body = await self._post(
            "create_order",
            "/orders",
            {
                "amount": to_minor_units(amount),
                "currency": currency,
                "receipt": receipt,
                "notes": notes or {},
            },
        )
        return GatewayOrder(
            order_id=body["id"],
            amount=from_minor_units(body.get("amount", to_minor_units(amount))),
            currency=body.get("currency", currency),
            receipt=body.get("receipt", receipt),
        )

    async def refund(self, payment_id, amount, idempotency_key, notes=None) -> GatewayRefund:
        body = await self._post(
            "refund",
            f"/payments/{payment_id}/refund",
            {
                "amount": to_minor_units(amount),
                "receipt": idempotency_key,
                "notes": notes or {},
            },
            headers={REFUND_IDEMPOTENCY_HEADER: idempotency_key},
        )
        return GatewayRefund(
            refund_id=body["id"],
            payment_id=body.get("payment_id", payment_id),
            amount=from_minor_units(body["amount"]) if "amount" in body else Decimal(amount),
            status=body.get("status", "processed"),
        )


def _error_description(response: httpx.Response) -> Optional[str]:
    try:
        return response.json().get("error", {}).get("description")
    except ValueError:
        return None
