"""
Tests for the gateway webhook: signature checks, idempotency and ordering.
"""

import hashlib
import hmac
import json

import pytest
import structlog
from httpx import AsyncClient
from structlog.testing import CapturingLogger

from cleaning_booking.services import booking_service

WEBHOOK_URL = "/api/v1/payments/webhook"


def sign(settings, body: bytes) -> str:
    return hmac.new(settings.RAZORPAY_WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()


def payment_event(event: str, order_id: str, gateway_payment_id: str, amount_paise: int = 117882) -> bytes:
    return json.dumps({
        "event": event,
        "payload": {
            "payment": {
                "entity": {
                    "id": gateway_payment_id,
                    "order_id": order_id,
                    "amount": amount_paise,
                    "currency": "INR",
                    "status": "captured" if event == "payment.captured" else "failed",
                    "error_description": None if event == "payment.captured" else "Card declined",
                }
            }
        },
    }).encode()


def refund_event(refund_id: str, gateway_payment_id: str, amount_paise, order_id: str = None) -> bytes:
    entity = {
        "id": refund_id,
        "payment_id": gateway_payment_id,
        "amount": amount_paise,
        "notes": {"reason": "Service not delivered"},
    }
    if order_id is not None:
        entity["order_id"] = order_id
    return json.dumps({"event": "refund.processed", "payload": {"refund": {"entity": entity}}}).encode()


async def deliver(client: AsyncClient, settings, body: bytes, signature: str = None):
    return await client.post(
        WEBHOOK_URL,
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Razorpay-Signature": signature if signature is not None else sign(settings, body),
        },
    )


async def open_order(client: AsyncClient, customer_headers, confirmed_booking) -> dict:
    booking = await confirmed_booking()
    order = await client.post(
        "/api/v1/payments/create-order",
        json={"booking_id": booking["id"], "amount": booking["pricing"]["total"]},
        headers=customer_headers,
    )
    return {"booking_id": booking["id"], **order.json()}


async def payment_status(client: AsyncClient, headers, payment_id: int) -> dict:
    return (await client.get(f"/api/v1/payments/{payment_id}", headers=headers)).json()


@pytest.mark.asyncio
async def test_payment_captured(client: AsyncClient, settings, customer_headers, confirmed_booking):
    order = await open_order(client, customer_headers, confirmed_booking)

    response = await deliver(client, settings, payment_event("payment.captured", order["order_id"], "pay_WH1"))
    assert response.status_code == 200
    assert response.text == "OK"

    payment = await payment_status(client, customer_headers, order["payment_id"])
    assert payment["status"] == "success"
    assert payment["gateway_transaction_id"] == "pay_WH1"
    booking = await client.get(f"/api/v1/bookings/{order['booking_id']}", headers=customer_headers)
    assert booking.json()["status"] == "assigned"


@pytest.mark.asyncio
async def test_invalid_signature_rejected_without_changes(
    client: AsyncClient, settings, customer_headers, confirmed_booking
):
    order = await open_order(client, customer_headers, confirmed_booking)
    body = payment_event("payment.captured", order["order_id"], "pay_EVIL")

    response = await deliver(client, settings, body, signature="deadbeef" * 8)
    assert response.status_code == 400

    payment = await payment_status(client, customer_headers, order["payment_id"])
    assert payment["status"] == "initiated"


@pytest.mark.asyncio
async def test_non_ascii_signature_rejected(client: AsyncClient, settings, customer_headers, confirmed_booking):
    order = await open_order(client, customer_headers, confirmed_booking)
    response = await client.post(
        WEBHOOK_URL,
        content=payment_event("payment.captured", order["order_id"], "pay_LATIN"),
        headers={"Content-Type": "application/json", "X-Razorpay-Signature": b"\xe9" * 64},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "signature_verification_failed"

    payment = await payment_status(client, customer_headers, order["payment_id"])
    assert payment["status"] == "initiated"


@pytest.mark.asyncio
async def test_missing_signature_rejected(client: AsyncClient, settings, customer_headers, confirmed_booking):
    order = await open_order(client, customer_headers, confirmed_booking)
    response = await client.post(
        WEBHOOK_URL,
        content=payment_event("payment.captured", order["order_id"], "pay_X"),
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_signature_covers_exact_bytes(client: AsyncClient, settings, customer_headers, confirmed_booking):
    """Re-serialising the body (here: adding whitespace) invalidates the signature."""
    order = await open_order(client, customer_headers, confirmed_booking)
    body = payment_event("payment.captured", order["order_id"], "pay_WS")
    signature = sign(settings, body)

    response = await deliver(client, settings, body + b"\n", signature=signature)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_duplicate_capture_is_noop(client: AsyncClient, settings, customer_headers, confirmed_booking):
    order = await open_order(client, customer_headers, confirmed_booking)
    body = payment_event("payment.captured", order["order_id"], "pay_DUP")

    first = await deliver(client, settings, body)
    second = await deliver(client, settings, body)
    assert first.status_code == 200
    assert second.status_code == 200

    payment = await payment_status(client, customer_headers, order["payment_id"])
    assert payment["status"] == "success"


@pytest.mark.asyncio
async def test_capture_after_verify_is_noop(client: AsyncClient, settings, customer_headers, paid_booking):
    paid = await paid_booking("pay_BOTH")
    response = await deliver(
        client, settings, payment_event("payment.captured", paid["order_id"], "pay_BOTH")
    )
    assert response.status_code == 200

    payment = await payment_status(client, customer_headers, paid["payment_id"])
    assert payment["status"] == "success"


@pytest.mark.asyncio
async def test_failed_after_success_is_ignored(client: AsyncClient, settings, customer_headers, paid_booking):
    paid = await paid_booking("pay_OK")
    response = await deliver(client, settings, payment_event("payment.failed", paid["order_id"], "pay_LATE"))
    assert response.status_code == 200

    payment = await payment_status(client, customer_headers, paid["payment_id"])
    assert payment["status"] == "success"
    assert payment["gateway_transaction_id"] == "pay_OK"


@pytest.mark.asyncio
async def test_failed_then_retried_capture(client: AsyncClient, settings, customer_headers, confirmed_booking):
    """A failed attempt can be followed by a successful one on the same order."""
    order = await open_order(client, customer_headers, confirmed_booking)

    await deliver(client, settings, payment_event("payment.failed", order["order_id"], "pay_TRY1"))
    payment = await payment_status(client, customer_headers, order["payment_id"])
    assert payment["status"] == "failed"

    await deliver(client, settings, payment_event("payment.captured", order["order_id"], "pay_TRY2"))
    payment = await payment_status(client, customer_headers, order["payment_id"])
    assert payment["status"] == "success"
    assert payment["gateway_transaction_id"] == "pay_TRY2"


@pytest.mark.asyncio
async def test_unknown_event_acknowledged(client: AsyncClient, settings):
    body = json.dumps({"event": "order.paid", "payload": {}}).encode()
    response = await deliver(client, settings, body)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_unknown_order_acknowledged(client: AsyncClient, settings):
    response = await deliver(client, settings, payment_event("payment.captured", "order_NOPE", "pay_NOPE"))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_malformed_body_rejected(client: AsyncClient, settings):
    body = b"not json"
    response = await deliver(client, settings, body)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_refund_processed_recorded_once(
    client: AsyncClient, settings, customer_headers, paid_booking
):
    paid = await paid_booking("pay_RF")
    body = refund_event("rfnd_WEBHOOK1", "pay_RF", 50000)

    assert (await deliver(client, settings, body)).status_code == 200
    assert (await deliver(client, settings, body)).status_code == 200

    payment = await payment_status(client, customer_headers, paid["payment_id"])
    assert payment["refund_amount"] == 500.0
    assert payment["is_refunded"] is True
    assert payment["status"] == "success"
    assert [r["gateway_refund_id"] for r in payment["refunds"]] == ["rfnd_WEBHOOK1"]
    assert payment["refunds"][0]["source"] == "webhook"


@pytest.mark.asyncio
async def test_full_refund_via_webhook_marks_refunded(
    client: AsyncClient, settings, customer_headers, paid_booking
):
    paid = await paid_booking("pay_FULL")
    await deliver(client, settings, refund_event("rfnd_FULL", "pay_FULL", 117882))

    payment = await payment_status(client, customer_headers, paid["payment_id"])
    assert payment["status"] == "refunded"
    assert payment["is_fully_refunded"] is True


@pytest.mark.asyncio
async def test_api_refund_then_webhook_not_double_applied(
    client: AsyncClient, settings, admin_headers, customer_headers, paid_booking
):
    paid = await paid_booking("pay_ONCE")
    refund = await client.post(
        f"/api/v1/payments/{paid['payment_id']}/refund",
        json={"amount": 200.00, "reason": "Late arrival"},
        headers=admin_headers,
    )
    assert refund.status_code == 200
    refund_id = refund.json()["refund_id"]

    await deliver(client, settings, refund_event(refund_id, "pay_ONCE", 20000))

    payment = await payment_status(client, customer_headers, paid["payment_id"])
    assert payment["refund_amount"] == 200.0
    assert len(payment["refunds"]) == 1


@pytest.mark.asyncio
async def test_refund_before_capture_matched_by_order(
    client: AsyncClient, settings, customer_headers, confirmed_booking
):
    """A refund event that overtakes the capture is found through its order id."""
    order = await open_order(client, customer_headers, confirmed_booking)

    early = await deliver(client, settings, refund_event("rfnd_EARLY", "pay_SLOW", 117882, order["order_id"]))
    assert early.status_code == 200
    payment = await payment_status(client, customer_headers, order["payment_id"])
    assert payment["refund_amount"] == 1178.82
    assert payment["status"] == "initiated"

    await deliver(client, settings, payment_event("payment.captured", order["order_id"], "pay_SLOW"))
    payment = await payment_status(client, customer_headers, order["payment_id"])
    assert payment["status"] == "refunded"
    assert payment["gateway_transaction_id"] == "pay_SLOW"
    assert [r["gateway_refund_id"] for r in payment["refunds"]] == ["rfnd_EARLY"]


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["50000", 12.5, -100, 0, True, None])
async def test_refund_with_malformed_amount_rejected(
    client: AsyncClient, settings, customer_headers, paid_booking, amount
):
    paid = await paid_booking("pay_BADAMT")
    response = await deliver(client, settings, refund_event("rfnd_BAD", "pay_BADAMT", amount))
    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"

    payment = await payment_status(client, customer_headers, paid["payment_id"])
    assert payment["refund_amount"] == 0.0
    assert payment["refunds"] == []


@pytest.mark.asyncio
async def test_capture_on_cancelled_booking_is_logged(
    client: AsyncClient, settings, customer_headers, admin_headers, confirmed_booking, monkeypatch
):
    """Money captured after cancellation stays off the booking and is reported."""
    order = await open_order(client, customer_headers, confirmed_booking)
    cancelled = await client.delete(f"/api/v1/bookings/{order['booking_id']}", headers=admin_headers)
    assert cancelled.status_code == 200

    captured = CapturingLogger()
    monkeypatch.setattr(booking_service, "logger", structlog.wrap_logger(captured, processors=[]))
    response = await deliver(client, settings, payment_event("payment.captured", order["order_id"], "pay_AFTER"))
    assert response.status_code == 200

    payment = await payment_status(client, customer_headers, order["payment_id"])
    assert payment["status"] == "success"
    booking = (await client.get(f"/api/v1/bookings/{order['booking_id']}", headers=customer_headers)).json()
    assert booking["status"] == "cancelled"
    assert booking["payment_id"] is None

    errors = [call.kwargs for call in captured.calls if call.method_name == "error"]
    assert [e["event"] for e in errors] == ["payment_on_cancelled_booking"]
    assert errors[0]["payment_id"] == order["payment_id"]
