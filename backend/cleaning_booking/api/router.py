"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter

from cleaning_booking.api.routes import auth, bookings, coupons, payments, services

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(services.router)
api_router.include_router(coupons.router)
api_router.include_router(bookings.router)
api_router.include_router(payments.router)
