"""
Catalog lookup and catalog administration.

Booking code depends only on `get_service_by_id`, which returns a frozen
`CatalogEntry` so callers cannot accidentally write through to the row.
"""

import re
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_booking.core.exceptions import NotFoundError, StateConflictError, ValidationError
from cleaning_booking.core.logging import get_logger
from cleaning_booking.models.service import Service
from cleaning_booking.schemas.service import ServiceCreate, ServiceResponse, ServiceUpdate
from cleaning_booking.services.cache_service import (
    get_cached_catalog,
    invalidate_catalog_cache,
    set_cached_catalog,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class CatalogAddOn:
    name: str
    price: Decimal


@dataclass(frozen=True)
class CatalogEntry:
    id: int
    name: str
    active: bool
    base_price: Decimal
    add_ons: tuple[CatalogAddOn, ...]


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.strip().lower())
    return slug.strip("-") or "service"


def normalize_add_ons(add_ons) -> list[dict]:
    """Trim names, drop duplicates (first wins) and store prices as strings."""
    seen = set()
    normalized = []
    for addon in add_ons:
        name = addon.name.strip()
        if not name or name in seen:
            continue
        seen.add(name)
        normalized.append({"name": name, "price": str(addon.price)})
    return normalized


def _to_entry(service: Service) -> CatalogEntry:
    return CatalogEntry(
        id=service.id,
        name=service.name,
        active=service.is_active,
        base_price=Decimal(service.base_price),
        add_ons=tuple(
            CatalogAddOn(name=a["name"], price=Decimal(str(a["price"])))
            for a in (service.add_ons or [])
        ),
    )


async def get_service(db: AsyncSession, service_id: int) -> Service:
    service = await db.get(Service, service_id)
    if service is None:
        raise NotFoundError(f"Service {service_id} not found")
    return service


async def get_service_by_id(db: AsyncSession, service_id: int) -> CatalogEntry:
    return _to_entry(await get_service(db, service_id))


async def list_services(db: AsyncSession, active_only: bool = True) -> list[dict]:
    cached = await get_cached_catalog(active_only)
    if cached is not None:
        return cached

    query = select(Service).order_by(Service.name.asc())
    if active_only:
        query = query.where(Service.is_active.is_(True))
    result = await db.execute(query)
    data = [
        ServiceResponse.model_validate(s).model_dump(mode="json")
        for s in result.scalars().all()
    ]
    await set_cached_catalog(active_only, data)
    return data


async def create_service(db: AsyncSession, data: ServiceCreate) -> Service:
    slug = slugify(data.name)
    existing = await db.execute(select(Service.id).where(Service.slug == slug))
    if existing.scalar_one_or_none() is not None:
        raise StateConflictError(f"A service with slug '{slug}' already exists")

    service = Service(
        name=data.name.strip(),
        slug=slug,
        category=data.category,
        description=data.description,
        base_price=data.base_price,
        currency=data.currency,
        duration_minutes=data.duration_minutes,
        add_ons=normalize_add_ons(data.add_ons),
        is_active=data.is_active,
    )
    db.add(service)
    await db.flush()

    await invalidate_catalog_cache()
    logger.info("service_created", service_id=service.id, slug=slug)
    return service


async def update_service(db: AsyncSession, service_id: int, data: ServiceUpdate) -> Service:
    """
    Apply a partial catalog edit.

    Existing bookings keep the prices they copied at creation time, so only
    bookings made after the edit see the new values.
    """
    service = await get_service(db, service_id)
    changed = []
    for field in sorted(data.model_fields_set):
        value = getattr(data, field)
        if value is None and field != "description":
            raise ValidationError(f"{field} cannot be null")
        if field == "name":
            value = value.strip()
        elif field == "add_ons":
            value = normalize_add_ons(value)
        setattr(service, field, value)
        changed.append(field)

    await db.flush()
    await invalidate_catalog_cache()
    logger.info("service_updated", service_id=service.id, fields=changed)
    return service


async def deactivate_service(db: AsyncSession, service_id: int) -> Service:
    """Hide a service from the catalog; bookings that reference it are kept."""
    service = await get_service(db, service_id)
    if service.is_active:
        service.is_active = False
        await db.flush()
        await invalidate_catalog_cache()
        logger.info("service_deactivated", service_id=service.id)
    return service
