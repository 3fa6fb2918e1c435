"""
Tests for coupon administration, discount preview and the pure discount rules.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from httpx import AsyncClient

from cleaning_booking.models import Coupon

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_coupon(**overrides) -> Coupon:
    fields = dict(
        code="SAVE",
        name="Save",
        discount_type="percentage",
        discount_value=Decimal("10"),
        minimum_order_value=Decimal("0"),
        maximum_discount=None,
        usage_limit=None,
        usage_count=0,
        valid_from=NOW - timedelta(days=1),
        valid_until=NOW + timedelta(days=1),
        is_active=True,
    )
    fields.update(overrides)
    return Coupon(**fields)


def coupon_body(**overrides) -> dict:
    now = datetime.now(timezone.utc)
    body = {
        "code": "monsoon50",
        "name": "Monsoon offer",
        "discount_type": "fixed",
        "discount_value": "50.00",
        "minimum_order_value": "0",
        "usage_limit": 100,
        "valid_from": (now - timedelta(hours=1)).isoformat(),
        "valid_until": (now + timedelta(days=10)).isoformat(),
    }
    body.update(overrides)
    return body


class TestDiscountRules:
    def test_percentage(self):
        quote = make_coupon().apply(Decimal("1178.82"), NOW)
        assert quote.valid
        assert quote.discount == Decimal("117.88")

    def test_percentage_capped(self):
        quote = make_coupon(maximum_discount=Decimal("100.00")).apply(Decimal("1178.82"), NOW)
        assert quote.discount == Decimal("100.00")

    def test_fixed_never_exceeds_total(self):
        quote = make_coupon(discount_type="fixed", discount_value=Decimal("500")).apply(Decimal("300.00"), NOW)
        assert quote.discount == Decimal("300.00")

    def test_below_minimum(self):
        coupon = make_coupon(minimum_order_value=Decimal("500.00"))
        quote = coupon.apply(Decimal("499.99"), NOW)
        assert not quote.valid
        assert quote.discount == Decimal("0")

    def test_inactive(self):
        assert not make_coupon(is_active=False).is_valid(NOW)

    def test_outside_window(self):
        coupon = make_coupon()
        assert not coupon.is_valid(NOW + timedelta(days=2))
        assert not coupon.is_valid(NOW - timedelta(days=2))
        assert coupon.is_expired(NOW + timedelta(days=2))

    def test_window_edges_inclusive(self):
        coupon = make_coupon()
        assert coupon.is_valid(coupon.valid_from)
        assert coupon.is_valid(coupon.valid_until)

    def test_usage_limit_reached(self):
        assert not make_coupon(usage_limit=3, usage_count=3).is_valid(NOW)
        assert make_coupon(usage_limit=3, usage_count=2).is_valid(NOW)


@pytest.mark.asyncio
async def test_admin_creates_coupon(client: AsyncClient, admin_headers):
    response = await client.post("/api/v1/coupons/", json=coupon_body(), headers=admin_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["code"] == "MONSOON50"
    assert data["usage_count"] == 0
    assert data["discount_value"] == 50.0


@pytest.mark.asyncio
async def test_duplicate_code_rejected(client: AsyncClient, admin_headers):
    await client.post("/api/v1/coupons/", json=coupon_body(), headers=admin_headers)
    response = await client.post(
        "/api/v1/coupons/", json=coupon_body(code="  Monsoon50 "), headers=admin_headers
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_non_admin_cannot_create(client: AsyncClient, customer_headers, staff_headers):
    for headers in (customer_headers, staff_headers):
        response = await client.post("/api/v1/coupons/", json=coupon_body(), headers=headers)
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_invalid_window_rejected(client: AsyncClient, admin_headers):
    now = datetime.now(timezone.utc)
    body = coupon_body(valid_from=now.isoformat(), valid_until=(now - timedelta(days=1)).isoformat())
    response = await client.post("/api/v1/coupons/", json=body, headers=admin_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_percentage_over_hundred_rejected(client: AsyncClient, admin_headers):
    body = coupon_body(discount_type="percentage", discount_value="120")
    response = await client.post("/api/v1/coupons/", json=body, headers=admin_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_validate_previews_without_redeeming(
    client: AsyncClient, customer_headers, coupon, session_factory
):
    response = await client.post(
        "/api/v1/coupons/validate",
        json={"code": "clean10", "order_total": "1178.82"},
        headers=customer_headers,
    )
    assert response.status_code == 200
    assert response.json() == {"code": "CLEAN10", "valid": True, "discount": 100.0}

    async with session_factory() as session:
        stored = await session.get(Coupon, coupon.id)
        assert stored.usage_count == 0


@pytest.mark.asyncio
async def test_validate_below_minimum(client: AsyncClient, customer_headers, coupon):
    response = await client.post(
        "/api/v1/coupons/validate",
        json={"code": "CLEAN10", "order_total": "300.00"},
        headers=customer_headers,
    )
    assert response.status_code == 200
    assert response.json()["valid"] is False
    assert response.json()["discount"] == 0.0


@pytest.mark.asyncio
async def test_validate_unknown_code(client: AsyncClient, customer_headers):
    response = await client.post(
        "/api/v1/coupons/validate",
        json={"code": "NOPE", "order_total": "1000"},
        headers=customer_headers,
    )
    assert response.status_code == 200
    assert response.json()["valid"] is False


@pytest.mark.asyncio
async def test_validate_requires_auth(client: AsyncClient, coupon):
    response = await client.post("/api/v1/coupons/validate", json={"code": "CLEAN10", "order_total": "1000"})
    assert response.status_code == 401
