"""
Coupon endpoints: administration and discount preview.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_booking.core.security import CurrentUser, get_current_user, require_roles
from cleaning_booking.db.session import get_db
from cleaning_booking.models.user import UserRole
from cleaning_booking.schemas.coupon import (
    CouponCreate,
    CouponResponse,
    CouponValidateRequest,
    CouponValidateResponse,
)
from cleaning_booking.services import coupon_service

router = APIRouter(prefix="/coupons", tags=["Coupons"])


@router.post(
    "/",
    response_model=CouponResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(UserRole.ADMIN.value))],
)
async def create_coupon(data: CouponCreate, db: AsyncSession = Depends(get_db)):
    return await coupon_service.create_coupon(db, data)


@router.post("/validate", response_model=CouponValidateResponse)
async def validate_coupon(
    data: CouponValidateRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Preview the discount a coupon would give; does not use it up."""
    quote = await coupon_service.quote_coupon(db, data.code, data.order_total)
    return CouponValidateResponse(
        code=coupon_service.normalize_code(data.code),
        valid=quote.valid,
        discount=quote.discount,
    )
