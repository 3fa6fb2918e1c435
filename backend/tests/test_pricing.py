"""
Tests for the pricing engine: arithmetic, rounding and catalog snapshots.
"""

from decimal import Decimal

import pytest

from cleaning_booking.core.exceptions import InvalidAddOn, InvalidQuantity, InvalidServiceReference
from cleaning_booking.services.pricing import (
    AddOnSnapshot,
    LineItemRequest,
    LineItemSnapshot,
    Pricing,
    apply_discount,
    compute_pricing,
    resolve_line_items,
)

TAX = Decimal("0.18")


def item(price: str, quantity: int = 1, add_ons=()) -> LineItemSnapshot:
    return LineItemSnapshot(
        service_id=1,
        service_name="Deep Home Cleaning",
        quantity=quantity,
        base_price=Decimal(price),
        add_ons=tuple(AddOnSnapshot(name=n, price=Decimal(p)) for n, p in add_ons),
    )


def test_single_item_with_tax():
    pricing = compute_pricing([item("999.00")], TAX)
    assert pricing == Pricing(
        subtotal=Decimal("999.00"),
        tax=Decimal("179.82"),
        total=Decimal("1178.82"),
        discount=Decimal("0.00"),
    )


def test_add_ons_are_multiplied_by_quantity():
    pricing = compute_pricing([item("999.00", quantity=2, add_ons=[("Fridge Cleaning", "199.00")])], TAX)
    assert pricing.subtotal == Decimal("2396.00")
    assert pricing.tax == Decimal("431.28")
    assert pricing.total == Decimal("2827.28")


def test_multiple_line_items_are_summed():
    pricing = compute_pricing([item("999.00"), item("450.50", quantity=3)], TAX)
    assert pricing.subtotal == Decimal("2350.50")
    assert pricing.tax == Decimal("423.09")
    assert pricing.total == Decimal("2773.59")


def test_tax_rounds_half_up():
    # 0.25 * 0.18 = 0.045
    pricing = compute_pricing([item("0.25")], TAX)
    assert pricing.tax == Decimal("0.05")
    assert pricing.total == Decimal("0.30")


def test_zero_quantity_rejected():
    with pytest.raises(InvalidQuantity):
        compute_pricing([item("999.00", quantity=0)], TAX)


def test_apply_discount_reduces_total():
    pricing = apply_discount(compute_pricing([item("999.00")], TAX), Decimal("100"))
    assert pricing.discount == Decimal("100.00")
    assert pricing.total == Decimal("1078.82")
    assert pricing.subtotal == Decimal("999.00")


def test_apply_discount_never_goes_negative():
    pricing = apply_discount(compute_pricing([item("10.00")], TAX), Decimal("500"))
    assert pricing.discount == Decimal("11.80")
    assert pricing.total == Decimal("0.00")


@pytest.mark.asyncio
async def test_resolve_line_items_snapshots_catalog(db_session, service):
    snapshots = await resolve_line_items(
        db_session,
        [LineItemRequest(service_id=service.id, quantity=2, add_ons=("Balcony Cleaning",))],
    )
    assert len(snapshots) == 1
    snap = snapshots[0]
    assert snap.service_name == "Deep Home Cleaning"
    assert snap.base_price == Decimal("999.00")
    assert snap.add_ons == (AddOnSnapshot(name="Balcony Cleaning", price=Decimal("149.50")),)
    assert snap.subtotal == Decimal("2297.00")


@pytest.mark.asyncio
async def test_resolve_unknown_service(db_session):
    with pytest.raises(InvalidServiceReference):
        await resolve_line_items(db_session, [LineItemRequest(service_id=9999)])


@pytest.mark.asyncio
async def test_resolve_inactive_service(db_session, inactive_service):
    with pytest.raises(InvalidServiceReference):
        await resolve_line_items(db_session, [LineItemRequest(service_id=inactive_service.id)])


@pytest.mark.asyncio
async def test_resolve_unknown_add_on(db_session, service):
    with pytest.raises(InvalidAddOn) as exc_info:
        await resolve_line_items(
            db_session,
            [LineItemRequest(service_id=service.id, add_ons=("Window Polishing",))],
        )
    assert exc_info.value.details["add_on"] == "Window Polishing"


@pytest.mark.asyncio
async def test_resolve_rejects_zero_quantity(db_session, service):
    with pytest.raises(InvalidQuantity):
        await resolve_line_items(db_session, [LineItemRequest(service_id=service.id, quantity=0)])
