"""
Tests for the gateway adapters and signature helpers.
"""

import json
from decimal import Decimal

import httpx
import pytest
import respx

from cleaning_booking.core.exceptions import GatewayRejected, GatewayTimeout, GatewayUnavailable
from cleaning_booking.services.gateways.base import (
    compute_signature,
    from_minor_units,
    to_minor_units,
    verify_payment_signature,
    verify_webhook_signature,
)
from cleaning_booking.services.gateways.razorpay import RazorpayGateway
from cleaning_booking.services.gateways.sandbox import SandboxGateway

API = "https://api.razorpay.test/v1"


@pytest.fixture
def razorpay() -> RazorpayGateway:
    return RazorpayGateway(key_id="rzp_test_key", key_secret="rzp_secret", api_base=API, timeout=2.0)


def test_minor_unit_conversion():
    assert to_minor_units(Decimal("1178.82")) == 117882
    assert to_minor_units(Decimal("0.10")) == 10
    assert from_minor_units(117882) == Decimal("1178.82")


def test_payment_signature():
    signature = compute_signature("secret", b"order_1|pay_1")
    assert verify_payment_signature("secret", "order_1", "pay_1", signature)
    assert not verify_payment_signature("secret", "order_1", "pay_2", signature)
    assert not verify_payment_signature("other", "order_1", "pay_1", signature)
    assert not verify_payment_signature("secret", "order_1", "pay_1", "")
    assert not verify_payment_signature("secret", "order_1", "pay_1", "\u00e9" * 64)


def test_webhook_signature():
    body = b'{"event":"payment.captured"}'
    signature = compute_signature("whsec", body)
    assert verify_webhook_signature("whsec", body, signature)
    assert not verify_webhook_signature("whsec", body + b" ", signature)
    assert not verify_webhook_signature("whsec", body, None)
    assert not verify_webhook_signature("whsec", body, "\u00e9" * 64)
    assert not verify_webhook_signature("whsec", body, "\udce9" * 64)


@pytest.mark.asyncio
async def test_sandbox_refund_ids_follow_idempotency_key():
    gateway = SandboxGateway(key_secret="secret")
    first = await gateway.refund("pay_1", Decimal("100"), idempotency_key="r1")
    again = await gateway.refund("pay_1", Decimal("100"), idempotency_key="r1")
    other = await gateway.refund("pay_1", Decimal("100"), idempotency_key="r2")

    assert first.refund_id == again.refund_id
    assert first.refund_id != other.refund_id
    assert len(gateway.refunds) == 2


@pytest.mark.asyncio
async def test_sandbox_signs_like_checkout():
    gateway = SandboxGateway(key_secret="secret")
    order = await gateway.create_order(Decimal("999.00"), "INR", receipt="booking_1")
    signature = gateway.sign_payment(order.order_id, "pay_1")
    assert verify_payment_signature("secret", order.order_id, "pay_1", signature)


@pytest.mark.asyncio
@respx.mock
async def test_razorpay_create_order(razorpay):
    route = respx.post(f"{API}/orders").respond(
        200,
        json={"id": "order_ABC", "amount": 117882, "currency": "INR", "receipt": "booking_CB1"},
    )

    order = await razorpay.create_order(Decimal("1178.82"), "INR", receipt="booking_CB1")

    assert order.order_id == "order_ABC"
    assert order.amount == Decimal("1178.82")
    sent = json.loads(route.calls.last.request.content)
    assert sent["amount"] == 117882
    assert sent["receipt"] == "booking_CB1"
    assert route.calls.last.request.headers["authorization"].startswith("Basic ")


@pytest.mark.asyncio
@respx.mock
async def test_razorpay_refund(razorpay):
    route = respx.post(f"{API}/payments/pay_1/refund").respond(
        200,
        json={"id": "rfnd_1", "payment_id": "pay_1", "amount": 50000, "status": "processed"},
    )

    refund = await razorpay.refund("pay_1", Decimal("500.00"), idempotency_key="refund-key")

    assert refund.refund_id == "rfnd_1"
    assert refund.amount == Decimal("500.00")
    assert json.loads(route.calls.last.request.content)["receipt"] == "refund-key"
    assert route.calls.last.request.headers["x-refund-idempotency"] == "refund-key"


@pytest.mark.asyncio
@respx.mock
async def test_razorpay_timeout(razorpay):
    respx.post(f"{API}/orders").mock(side_effect=httpx.ReadTimeout("timed out"))

    with pytest.raises(GatewayTimeout):
        await razorpay.create_order(Decimal("10"), "INR", receipt="r")


@pytest.mark.asyncio
@respx.mock
async def test_razorpay_connection_error(razorpay):
    respx.post(f"{API}/orders").mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(GatewayUnavailable) as exc_info:
        await razorpay.create_order(Decimal("10"), "INR", receipt="r")
    assert type(exc_info.value) is GatewayUnavailable


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [429, 500, 503])
@respx.mock
async def test_razorpay_unavailable(razorpay, status_code):
    respx.post(f"{API}/payments/pay_1/refund").respond(status_code, json={})

    with pytest.raises(GatewayUnavailable) as exc_info:
        await razorpay.refund("pay_1", Decimal("10"), idempotency_key="r")
    assert type(exc_info.value) is GatewayUnavailable
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
@respx.mock
async def test_razorpay_rejected(razorpay):
    respx.post(f"{API}/payments/pay_1/refund").respond(
        400,
        json={"error": {"code": "BAD_REQUEST_ERROR", "description": "The refund amount is invalid"}},
    )

    with pytest.raises(GatewayRejected) as exc_info:
        await razorpay.refund("pay_1", Decimal("10"), idempotency_key="r")
    assert exc_info.value.message == "The refund amount is invalid"
    assert exc_info.value.status_code == 502
