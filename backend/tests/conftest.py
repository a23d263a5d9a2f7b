"""
Pytest fixtures for test database, client, gateway and authentication.

Each test gets its own in-memory SQLite database, so tests are isolated
without a running PostgreSQL. The gateway is replaced by an in-process fake.
"""

import os

# Settings are cached on first use: configure before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("CLEANUP_WORKER_ENABLED", "false")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")

import json
from datetime import date, datetime, time, timedelta, timezone
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from pelagos.main import app
from pelagos.api.deps import get_payment_gateway
from pelagos.core.config import get_settings
from pelagos.core.security import create_access_token
from pelagos.db.base import Base
from pelagos.db.session import get_db
from pelagos.models import TimeSlot, Booking, Payment, Hold
from pelagos.services.signature import compute_signature
from pelagos.services.interfaces.gateway import (
    PaymentGateway,
    GatewayPayment,
    GatewayUnavailableError,
)

TEST_DATABASE_URL = "sqlite+aiosqlite://"

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


class FakeGateway(PaymentGateway):
    """Answers payment lookups from a dict; set `error` to simulate an outage."""

    def __init__(self):
        self.payments: dict[str, GatewayPayment] = {}
        self.error = None
        self.calls: list[str] = []

    def add(self, payment_id: str, order_id: str, status: str = "captured", amount: int = 150000):
        self.payments[payment_id] = GatewayPayment(
            id=payment_id,
            order_id=order_id,
            status=status,
            amount=amount,
            currency="INR",
        )

    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        self.calls.append(payment_id)
        if self.error is not None:
            raise self.error
        if payment_id not in self.payments:
            raise GatewayUnavailableError("http_error", status_code=404)
        return self.payments[payment_id]


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, gateway: FakeGateway) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the DB and gateway dependencies overridden."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def auth_headers() -> dict:
    """Bearer token for the booking owner."""
    token = create_access_token(data={"sub": USER_ID})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers() -> dict:
    token = create_access_token(data={"sub": OTHER_USER_ID})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(settings) -> dict:
    return {"X-Admin-Key": settings.ADMIN_API_KEY}


async def _create_held_booking(
    db: AsyncSession,
    suffix: str,
    slot_id: str,
    booking_status: str = "pending_hold",
) -> SimpleNamespace:
    ids = SimpleNamespace(
        slot_id=slot_id,
        booking_id=f"booking-{suffix}",
        booking_code=f"PLG-{suffix.upper()}",
        order_id=f"order_{suffix}",
        payment_id=f"pay_{suffix}",
        user_id=USER_ID,
    )
    db.add(
        Booking(
            id=ids.booking_id,
            booking_code=ids.booking_code,
            user_id=USER_ID,
            time_slot_id=slot_id,
            status=booking_status,
            payment_status="unpaid",
            customer_name="Asha Rao",
            customer_email="asha@example.com",
            participants=1,
            amount=150000,
        )
    )
    db.add(Payment(booking_id=ids.booking_id, order_id=ids.order_id, amount=150000))
    db.add(
        Hold(
            booking_id=ids.booking_id,
            expires_at=datetime.now(timezone.utc) + timedelta(minutes=15),
        )
    )
    await db.commit()
    return ids


@pytest_asyncio.fixture
async def slot(db_session: AsyncSession) -> str:
    """A morning surf lesson slot with 5 of 10 seats left. Returns its id."""
    db_session.add(
        TimeSlot(
            id="slot-1",
            school_id="school-1",
            sport_id="surf",
            slot_date=date(2026, 11, 1),
            start_time=time(9, 0),
            end_time=time(11, 0),
            capacity=10,
            seats_left=5,
        )
    )
    await db_session.commit()
    return "slot-1"


@pytest_asyncio.fixture
async def held_booking(db_session: AsyncSession, slot: str) -> SimpleNamespace:
    """A pending_hold booking with a created payment record and an active hold."""
    return await _create_held_booking(db_session, "a1", slot)


@pytest.fixture
def make_held_booking(db_session: AsyncSession, slot: str):
    """Factory for more bookings on the same slot, optionally in another status."""

    async def _make(suffix: str, booking_status: str = "pending_hold") -> SimpleNamespace:
        return await _create_held_booking(db_session, suffix, slot, booking_status)

    return _make


@pytest.fixture
def fetch(db_session: AsyncSession):
    """Load a row bypassing the identity map, since the ledger writes skip the ORM."""

    async def _fetch(model, pk):
        return await db_session.get(model, pk, populate_existing=True)

    return _fetch


@pytest.fixture
def webhook(client: AsyncClient, settings):
    """Post a signed Razorpay webhook for a payment event."""

    async def _post(event: str, order_id: str, payment_id: str, signature: str = None, body: bytes = None):
        if body is None:
            body = json.dumps(
                {
                    "entity": "event",
                    "event": event,
                    "payload": {
                        "payment": {
                            "entity": {
                                "id": payment_id,
                                "order_id": order_id,
                                "amount": 150000,
                                "currency": "INR",
                                "status": "failed" if event == "payment.failed" else "captured",
                            }
                        }
                    },
                }
            ).encode()
        if signature is None:
            signature = compute_signature(body, settings.RAZORPAY_WEBHOOK_SECRET)
        return await client.post(
            "/api/v1/webhooks/razorpay",
            content=body,
            headers={"Content-Type": "application/json", "X-Razorpay-Signature": signature},
        )

    return _post


@pytest.fixture
def checkout_payload(settings):
    """Body for POST /payments/verify with a valid checkout signature."""

    def _payload(ids: SimpleNamespace) -> dict:
        return {
            "orderId": ids.order_id,
            "paymentId": ids.payment_id,
            "signature": compute_signature(
                f"{ids.order_id}|{ids.payment_id}", settings.RAZORPAY_KEY_SECRET
            ),
            "bookingId": ids.booking_id,
        }

    return _payload
