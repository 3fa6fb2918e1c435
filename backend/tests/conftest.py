"""
Pytest fixtures for test database, client, and authentication.

Each test gets its own SQLite file so concurrent sessions behave like
separate connections. Requests get a fresh session per call, committed on
success and rolled back on error, mirroring `get_db`.
"""

import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_ENABLED"] = "false"
os.environ["PAYMENT_GATEWAY"] = "sandbox"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RAZORPAY_KEY_SECRET"] = "test-key-secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "test-webhook-secret"

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from cleaning_booking.core.config import get_settings
from cleaning_booking.core.security import create_access_token, hash_password
from cleaning_booking.db.base import Base
from cleaning_booking.db.session import get_db
from cleaning_booking.main import app
from cleaning_booking.models import Coupon, Service, User
from cleaning_booking.services.gateways import get_payment_gateway
from cleaning_booking.services.gateways.sandbox import SandboxGateway

MORNING_SLOT = "9:00 AM - 11:00 AM"


@pytest.fixture
def settings():
    return get_settings()


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Fresh database file with all tables for one test."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway(settings) -> SandboxGateway:
    return SandboxGateway(key_secret=settings.RAZORPAY_KEY_SECRET)


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, gateway) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the DB session and payment gateway overridden."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_user(session_factory, email: str, role: str, full_name: str) -> User:
    async with session_factory() as session:
        user = User(
            email=email,
            full_name=full_name,
            hashed_password=hash_password("testpassword123"),
            role=role,
            is_active=True,
        )
        session.add(user)
        await session.commit()
        return user


def _headers(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def customer(session_factory) -> User:
    return await _create_user(session_factory, "customer@example.com", "customer", "Asha Customer")


@pytest_asyncio.fixture
async def other_customer(session_factory) -> User:
    return await _create_user(session_factory, "other@example.com", "customer", "Ravi Other")


@pytest_asyncio.fixture
async def staff(session_factory) -> User:
    return await _create_user(session_factory, "staff@example.com", "staff", "Meera Staff")


@pytest_asyncio.fixture
async def admin(session_factory) -> User:
    return await _create_user(session_factory, "admin@example.com", "admin", "Admin User")


@pytest.fixture
def customer_headers(customer) -> dict:
    return _headers(customer)


@pytest.fixture
def other_customer_headers(other_customer) -> dict:
    return _headers(other_customer)


@pytest.fixture
def staff_headers(staff) -> dict:
    return _headers(staff)


@pytest.fixture
def admin_headers(admin) -> dict:
    return _headers(admin)


@pytest_asyncio.fixture
async def service(session_factory) -> Service:
    """Deep cleaning at 999.00 with two add-ons."""
    async with session_factory() as session:
        svc = Service(
            name="Deep Home Cleaning",
            slug="deep-home-cleaning",
            category="deep_cleaning",
            description="Top to bottom cleaning",
            base_price=Decimal("999.00"),
            currency="INR",
            duration_minutes=180,
            add_ons=[
                {"name": "Fridge Cleaning", "price": "199.00"},
                {"name": "Balcony Cleaning", "price": "149.50"},
            ],
            is_active=True,
        )
        session.add(svc)
        await session.commit()
        return svc


@pytest_asyncio.fixture
async def inactive_service(session_factory) -> Service:
    async with session_factory() as session:
        svc = Service(
            name="Retired Service",
            slug="retired-service",
            category="specialty",
            base_price=Decimal("500.00"),
            duration_minutes=60,
            add_ons=[],
            is_active=False,
        )
        session.add(svc)
        await session.commit()
        return svc


@pytest_asyncio.fixture
async def coupon(session_factory) -> Coupon:
    """10% off orders of at least 500, capped at 100, five uses."""
    now = datetime.now(timezone.utc)
    async with session_factory() as session:
        c = Coupon(
            code="CLEAN10",
            name="Ten percent off",
            discount_type="percentage",
            discount_value=Decimal("10"),
            minimum_order_value=Decimal("500.00"),
            maximum_discount=Decimal("100.00"),
            usage_limit=5,
            usage_count=0,
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=30),
            is_active=True,
        )
        session.add(c)
        await session.commit()
        return c


def future_date(days: int = 3, hour: int = 9) -> datetime:
    return (datetime.now(timezone.utc) + timedelta(days=days)).replace(
        hour=hour, minute=0, second=0, microsecond=0
    )


@pytest.fixture
def booking_payload(service):
    """Builds a valid booking request body; keyword arguments override fields."""

    def _build(**overrides) -> dict:
        payload = {
            "services": [{"service_id": service.id, "quantity": 1, "add_ons": []}],
            "service_address": {
                "street": "12 MG Road, Indiranagar",
                "city": "Bengaluru",
                "state": "Karnataka",
                "zip_code": "560038",
            },
            "scheduled_date": future_date().isoformat(),
            "scheduled_time_slot": MORNING_SLOT,
            "special_instructions": "Ring the bell twice",
        }
        payload.update(overrides)
        return payload

    return _build


@pytest.fixture
def confirmed_booking(client, booking_payload, customer_headers, admin_headers):
    """Creates a booking as the customer and confirms it as admin."""

    async def _create(**overrides) -> dict:
        response = await client.post(
            "/api/v1/bookings/", json=booking_payload(**overrides), headers=customer_headers
        )
        assert response.status_code == 201, response.text
        booking = response.json()
        response = await client.put(
            f"/api/v1/bookings/{booking['id']}",
            json={"status": "confirmed"},
            headers=admin_headers,
        )
        assert response.status_code == 200, response.text
        return response.json()

    return _create


@pytest.fixture
def paid_booking(client, gateway, customer_headers, confirmed_booking):
    """Runs the full checkout: confirmed booking, gateway order, verified payment."""

    async def _pay(gateway_payment_id: str = "pay_TEST0001") -> dict:
        booking = await confirmed_booking()
        order = await client.post(
            "/api/v1/payments/create-order",
            json={"booking_id": booking["id"], "amount": booking["pricing"]["total"]},
            headers=customer_headers,
        )
        assert order.status_code == 200, order.text
        order_id = order.json()["order_id"]

        verified = await client.post(
            "/api/v1/payments/verify",
            json={
                "order_id": order_id,
                "payment_id": gateway_payment_id,
                "signature": gateway.sign_payment(order_id, gateway_payment_id),
                "booking_id": booking["id"],
            },
            headers=customer_headers,
        )
        assert verified.status_code == 200, verified.text
        return {
            "booking_id": booking["id"],
            "payment_id": order.json()["payment_id"],
            "order_id": order_id,
            "gateway_payment_id": gateway_payment_id,
            "total": booking["pricing"]["total"],
        }

    return _pay
