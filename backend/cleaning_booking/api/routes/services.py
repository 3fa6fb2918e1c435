"""
Service catalog endpoints.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_booking.core.security import require_roles
from cleaning_booking.db.session import get_db
from cleaning_booking.models.user import UserRole
from cleaning_booking.schemas.service import ServiceCreate, ServiceResponse, ServiceUpdate
from cleaning_booking.services import catalog_service

router = APIRouter(prefix="/services", tags=["Services"])


@router.get("/", response_model=list[ServiceResponse])
async def list_services(db: AsyncSession = Depends(get_db)):
    """List active services. Served from Redis when available."""
    return await catalog_service.list_services(db, active_only=True)


@router.get("/{service_id}", response_model=ServiceResponse)
async def get_service(service_id: int, db: AsyncSession = Depends(get_db)):
    return await catalog_service.get_service(db, service_id)


@router.post(
    "/",
    response_model=ServiceResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(UserRole.ADMIN.value))],
)
async def create_service(data: ServiceCreate, db: AsyncSession = Depends(get_db)):
    """Add a service to the catalog (admin only)."""
    return await catalog_service.create_service(db, data)


@router.put(
    "/{service_id}",
    response_model=ServiceResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN.value))],
)
async def update_service(service_id: int, data: ServiceUpdate, db: AsyncSession = Depends(get_db)):
    return await catalog_service.update_service(db, service_id, data)


@router.delete(
    "/{service_id}",
    response_model=ServiceResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN.value))],
)
async def deactivate_service(service_id: int, db: AsyncSession = Depends(get_db)):
    """Deactivate a service. Rows are kept because bookings reference them."""
    return await catalog_service.deactivate_service(db, service_id)
