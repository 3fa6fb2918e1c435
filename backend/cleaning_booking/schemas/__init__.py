from cleaning_booking.schemas.user import UserCreate, UserResponse, UserLogin, Token
from cleaning_booking.schemas.service import ServiceCreate, ServiceResponse
from cleaning_booking.schemas.coupon import CouponCreate, CouponResponse
from cleaning_booking.schemas.booking import BookingCreate, BookingUpdate, BookingResponse
from cleaning_booking.schemas.payment import CreateOrderRequest, VerifyPaymentRequest, PaymentResponse

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token",
    "ServiceCreate", "ServiceResponse",
    "CouponCreate", "CouponResponse",
    "BookingCreate", "BookingUpdate", "BookingResponse",
    "CreateOrderRequest", "VerifyPaymentRequest", "PaymentResponse",
]
