"""
Pricing engine.

`resolve_line_items` is the only part that talks to the catalog: it turns
the customer's request into frozen snapshots of name and prices. Everything
after that (`compute_pricing`, `apply_discount`) is pure arithmetic on
Decimal, rounded half-up to the currency's minor unit.
"""

from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_booking.core.exceptions import InvalidAddOn, InvalidQuantity, InvalidServiceReference, NotFoundError
from cleaning_booking.db.types import ZERO
from cleaning_booking.services.catalog_service import get_service_by_id

CENT = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class AddOnSnapshot:
    name: str
    price: Decimal


@dataclass(frozen=True)
class LineItemRequest:
    service_id: int
    quantity: int = 1
    add_ons: Sequence[str] = ()


@dataclass(frozen=True)
class LineItemSnapshot:
    service_id: int
    service_name: str
    quantity: int
    base_price: Decimal
    add_ons: tuple[AddOnSnapshot, ...] = ()

    @property
    def unit_price(self) -> Decimal:
        return self.base_price + sum((a.price for a in self.add_ons), ZERO)

    @property
    def subtotal(self) -> Decimal:
        return round_money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class Pricing:
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    discount: Decimal = field(default=ZERO)


def compute_pricing(line_items: Iterable[LineItemSnapshot], tax_rate: Decimal) -> Pricing:
    """Subtotal, tax and total for snapshotted line items (no discount)."""
    subtotal = ZERO
    for item in line_items:
        if item.quantity < 1:
            raise InvalidQuantity(
                "Quantity must be at least 1",
                details={"service_id": item.service_id, "quantity": item.quantity},
            )
        subtotal += item.subtotal

    subtotal = round_money(subtotal)
    tax = round_money(subtotal * Decimal(tax_rate))
    return Pricing(subtotal=subtotal, tax=tax, total=subtotal + tax)


def apply_discount(pricing: Pricing, discount: Decimal) -> Pricing:
    """Subtract a discount, never taking the total below zero."""
    discount = min(round_money(discount), pricing.subtotal + pricing.tax)
    if discount < ZERO:
        discount = ZERO
    return replace(
        pricing,
        discount=discount,
        total=pricing.subtotal + pricing.tax - discount,
    )


async def resolve_line_items(
    db: AsyncSession,
    requested: Sequence[LineItemRequest],
) -> list[LineItemSnapshot]:
    """
    Snapshot catalog data for each requested line item.

    Add-ons are matched by name against the service's current add-on list;
    the catalog price is used, never a client-supplied one.
    """
    snapshots: list[LineItemSnapshot] = []
    for item in requested:
        if item.quantity < 1:
            raise InvalidQuantity(
                "Quantity must be at least 1",
                details={"service_id": item.service_id, "quantity": item.quantity},
            )
        try:
            entry = await get_service_by_id(db, item.service_id)
        except NotFoundError:
            entry = None
        if entry is None or not entry.active:
            raise InvalidServiceReference(
                f"Service {item.service_id} not found or inactive",
                details={"service_id": item.service_id},
            )

        available = {addon.name: addon.price for addon in entry.add_ons}
        add_ons = []
        for name in item.add_ons:
            if name not in available:
                raise InvalidAddOn(
                    f"Add-on '{name}' is not offered for service {entry.name}",
                    details={"service_id": item.service_id, "add_on": name},
                )
            add_ons.append(AddOnSnapshot(name=name, price=available[name]))

        snapshots.append(
            LineItemSnapshot(
                service_id=entry.id,
                service_name=entry.name,
                quantity=item.quantity,
                base_price=entry.base_price,
                add_ons=tuple(add_ons),
            )
        )
    return snapshots
