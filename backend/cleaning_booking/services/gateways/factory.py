"""
Gateway selection.

The gateway is a FastAPI dependency so routes receive it explicitly and
tests can override it.
"""

from fastapi import Depends

from cleaning_booking.core.config import Settings, get_settings

from .base import PaymentGateway
from .razorpay import RazorpayGateway
from .sandbox import SandboxGateway

_gateway: PaymentGateway | None = None


def build_gateway(settings: Settings) -> PaymentGateway:
    if settings.PAYMENT_GATEWAY == "razorpay":
        return RazorpayGateway(
            key_id=settings.RAZORPAY_KEY_ID,
            key_secret=settings.RAZORPAY_KEY_SECRET,
            api_base=settings.RAZORPAY_API_BASE,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        )
    if settings.PAYMENT_GATEWAY == "sandbox":
        return SandboxGateway(
            key_secret=settings.RAZORPAY_KEY_SECRET,
            key_id=settings.RAZORPAY_KEY_ID or None,
        )
    raise ValueError(f"Unknown payment gateway: {settings.PAYMENT_GATEWAY}")


def get_payment_gateway(settings: Settings = Depends(get_settings)) -> PaymentGateway:
    global _gateway
    if _gateway is None:
        _gateway = build_gateway(settings)
    return _gateway
