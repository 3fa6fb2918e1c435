"""
Coupon administration, preview and redemption.

Redemption must not let two bookings take the last use of a coupon.
`reserve_coupon` re-checks every validity rule inside one conditional
UPDATE that also increments `usage_count`, so the database decides which
request wins; the loser sees zero rows and gets CouponUnavailable.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from cleaning_booking.core.exceptions import CouponUnavailable, StateConflictError
from cleaning_booking.core.logging import get_logger
from cleaning_booking.db.types import ZERO, utcnow
from cleaning_booking.models.coupon import Coupon, CouponQuote
from cleaning_booking.schemas.coupon import CouponCreate

logger = get_logger(__name__)


def normalize_code(code: str) -> str:
    return code.strip().upper()


async def get_coupon_by_code(db: AsyncSession, code: str) -> Optional[Coupon]:
    result = await db.execute(select(Coupon).where(Coupon.code == normalize_code(code)))
    return result.scalar_one_or_none()


async def create_coupon(db: AsyncSession, data: CouponCreate) -> Coupon:
    code = normalize_code(data.code)
    if await get_coupon_by_code(db, code) is not None:
        raise StateConflictError(f"Coupon {code} already exists")

    coupon = Coupon(
        code=code,
        name=data.name,
        discount_type=data.discount_type,
        discount_value=data.discount_value,
        minimum_order_value=data.minimum_order_value,
        maximum_discount=data.maximum_discount,
        usage_limit=data.usage_limit,
        usage_count=0,
        valid_from=data.valid_from,
        valid_until=data.valid_until,
        is_active=data.is_active,
    )
    db.add(coupon)
    await db.flush()

    logger.info("coupon_created", coupon_id=coupon.id, code=code)
    return coupon


async def quote_coupon(
    db: AsyncSession,
    code: str,
    order_total: Decimal,
    now: Optional[datetime] = None,
) -> CouponQuote:
    """Preview a coupon against an order total without redeeming it."""
    coupon = await get_coupon_by_code(db, code)
    if coupon is None:
        return CouponQuote(valid=False, discount=ZERO)
    return coupon.apply(order_total, now or utcnow())


async def reserve_coupon(
    db: AsyncSession,
    code: str,
    order_total: Decimal,
    now: Optional[datetime] = None,
) -> Decimal:
    """Redeem one use of a coupon and return the discount it grants."""
    now = now or utcnow()
    coupon = await get_coupon_by_code(db, code)
    if coupon is None:
        raise CouponUnavailable(f"Coupon {normalize_code(code)} not found")

    quote = coupon.apply(order_total, now)
    if not quote.valid:
        raise CouponUnavailable(
            f"Coupon {coupon.code} is not valid for this order",
            details={"code": coupon.code},
        )

    result = await db.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon.id,
            Coupon.is_active.is_(True),
            Coupon.valid_from <= now,
            Coupon.valid_until >= now,
            or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
        )
        .values(usage_count=Coupon.usage_count + 1)
        .returning(Coupon.usage_count)
        .execution_options(synchronize_session=False)
    )
    usage_count = result.scalar_one_or_none()
    if usage_count is None:
        logger.info("coupon_exhausted", code=coupon.code)
        raise CouponUnavailable(
            f"Coupon {coupon.code} is no longer available",
            details={"code": coupon.code},
        )

    set_committed_value(coupon, "usage_count", usage_count)
    logger.info("coupon_reserved", code=coupon.code, usage_count=usage_count, discount=str(quote.discount))
    return quote.discount
