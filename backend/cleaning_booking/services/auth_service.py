"""
Authentication service handling user registration and login.

Self-registration always creates a customer; staff and admin accounts are
provisioned out of band.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_booking.core.config import Settings
from cleaning_booking.core.exceptions import AuthenticationError, AuthorizationError, StateConflictError
from cleaning_booking.core.logging import get_logger
from cleaning_booking.core.security import create_access_token, hash_password, verify_password
from cleaning_booking.models.user import User, UserRole
from cleaning_booking.schemas.user import UserCreate, UserLogin

logger = get_logger(__name__)


async def register_user(db: AsyncSession, user_data: UserCreate) -> User:
    """
    Register a new customer with a hashed password.
    Raises 409 if the email is already registered.
    """
    email = user_data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        logger.warning("registration_failed", reason="email_exists", email=email)
        raise StateConflictError("Email already registered", code="email_exists")

    user = User(
        email=email,
        full_name=user_data.full_name.strip(),
        phone=user_data.phone,
        hashed_password=hash_password(user_data.password),
        role=UserRole.CUSTOMER.value,
    )
    db.add(user)
    await db.flush()

    logger.info("user_registered", user_id=user.id, email=user.email)
    return user


async def authenticate_user(db: AsyncSession, login_data: UserLogin, settings: Settings) -> str:
    """
    Authenticate user and return JWT access token.
    Raises 401 if credentials are invalid.
    """
    result = await db.execute(select(User).where(User.email == login_data.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", email=login_data.email)
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        raise AuthorizationError("Account is deactivated", code="account_inactive")

    token = create_access_token(data={"sub": str(user.id), "role": user.role}, settings=settings)
    logger.info("user_logged_in", user_id=user.id)
    return token
