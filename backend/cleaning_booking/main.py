"""
House-Cleaning Booking API - Main Application Entry Point

Customers book cleaning services, staff carry them out, and payments flow
through an external gateway:
- Catalog-priced bookings with per-day booking numbers
- Payment orders, signature verification and idempotent gateway webhooks
- Partial and full refunds keyed by gateway refund id
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cleaning_booking.api.errors import register_error_handlers
from cleaning_booking.api.middleware import RequestLoggingMiddleware
from cleaning_booking.api.router import api_router
from cleaning_booking.core.config import Settings, get_settings
from cleaning_booking.core.logging import get_logger, setup_logging
from cleaning_booking.core.metrics import metrics_endpoint
from cleaning_booking.infrastructure import close_redis, get_redis
from cleaning_booking.services.cache_service import get_cache_stats


def create_app(settings: Settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifecycle: startup and shutdown hooks."""
        setup_logging(settings)
        logger = get_logger(__name__)

        logger.info(
            "application_starting",
            app=settings.APP_NAME,
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT,
            gateway=settings.PAYMENT_GATEWAY,
        )

        redis_client = await get_redis()
        if redis_client:
            logger.info("redis_ready")
        else:
            logger.warning("redis_unavailable", message="Running without cache")

        yield

        await close_redis()
        logger.info("application_shutdown")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Booking, pricing and payment API for a house-cleaning service",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    register_error_handlers(app)
    app.include_router(api_router)

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for Docker and load balancers."""
        cache_stats = await get_cache_stats()
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "cache": cache_stats,
        }

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        return metrics_endpoint()

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "message": f"Welcome to {settings.APP_NAME}",
            "version": settings.APP_VERSION,
            "docs": "/docs",
        }

    return app


app = create_app(get_settings())
