"""
Authentication endpoints: register and login.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_booking.core.config import Settings, get_settings
from cleaning_booking.db.session import get_db
from cleaning_booking.schemas.user import Token, UserCreate, UserLogin, UserResponse
from cleaning_booking.services.auth_service import authenticate_user, register_user

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: AsyncSession = Depends(get_db)):
    """Register a new customer account."""
    return await register_user(db, user_data)


@router.post("/login", response_model=Token)
async def login(
    login_data: UserLogin,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Authenticate and receive a JWT access token."""
    token = await authenticate_user(db, login_data, settings)
    return Token(access_token=token)
