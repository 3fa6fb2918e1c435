"""
Exception handlers translating domain and database errors into JSON.

Every error body has the same shape:
    {"detail": <message>, "code": <machine code>, "errors": <details or null>}
"""

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm.exc import StaleDataError

from cleaning_booking.core.config import get_settings
from cleaning_booking.core.exceptions import DomainError
from cleaning_booking.core.logging import get_logger

logger = get_logger(__name__)


def _error_body(detail: str, code: str, errors: Optional[Any] = None) -> dict:
    return {
        "detail": detail,
        "code": code,
        "errors": jsonable_encoder(errors) if errors else None,
    }


def _respond(request: Request, status_code: int, detail: str, code: str, errors: Any = None, exc=None):
    if status_code >= 500:
        logger.error(
            "request_error",
            status_code=status_code,
            code=code,
            path=request.url.path,
            error=str(exc) if exc is not None else detail,
            exc_info=exc is not None and not isinstance(exc, DomainError),
        )
    return JSONResponse(_error_body(detail, code, errors), status_code=status_code)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        return _respond(request, exc.status_code, exc.message, exc.code, exc.details, exc)

    @app.exception_handler(StaleDataError)
    async def stale_data_handler(request: Request, exc: StaleDataError) -> JSONResponse:
        logger.info("optimistic_lock_conflict", path=request.url.path)
        return _respond(
            request,
            409,
            "The resource was modified by another request. Please retry.",
            "concurrent_modification",
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
        logger.warning("integrity_conflict", path=request.url.path, error=str(exc.orig))
        return _respond(request, 409, "The request conflicts with existing data", "conflict")

    @app.exception_handler(PoolTimeoutError)
    async def pool_timeout_handler(request: Request, exc: PoolTimeoutError) -> JSONResponse:
        return _respond(request, 503, "Database is busy, please retry", "database_timeout", exc=exc)

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        if isinstance(getattr(exc, "orig", None), TimeoutError):
            return _respond(request, 503, "Database query timed out", "database_timeout", exc=exc)
        return _respond(request, 500, "A database error occurred", "persistence_error", exc=exc)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        settings = get_settings()
        detail = str(exc) if settings.ENVIRONMENT == "development" else "Internal server error"
        return _respond(request, 500, detail, "internal_error", exc=exc)
