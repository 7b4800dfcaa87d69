"""
Pytest fixtures for test database, client, payment gateway and admin auth.

Runs against a throwaway SQLite file by default (every transaction is
BEGIN IMMEDIATE, so concurrent sessions really contend for the same rows).
Set TEST_DATABASE_URL to a postgresql+asyncpg URL to run the same suite on
PostgreSQL. Tables are created and dropped around every test.
"""

import json
import os
import tempfile
from datetime import date, timedelta
from typing import AsyncGenerator

_DEFAULT_TEST_DB = os.path.join(tempfile.gettempdir(), f"kennel_test_{os.getpid()}.db")
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{_DEFAULT_TEST_DB}")

# Must be set before the app (and its cached settings) is imported
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["REDIS_ENABLED"] = "false"
os.environ["SWEEPER_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from kennel.main import app
from kennel.db.base import Base
from kennel.db.session import build_engine, get_db
from kennel.core.errors import PaymentVerificationError
from kennel.core.security import create_access_token
from kennel.schemas.reservation import ReservationCreate
from kennel.services.gateway_factory import get_payment_gateway
from kennel.services.interfaces.payment_gateway import CheckoutSession, PaymentGateway
from kennel.services.stripe_gateway import event_from_object
from kennel.utils.time import facility_today

if TEST_DATABASE_URL.startswith("sqlite"):
    test_engine = build_engine(TEST_DATABASE_URL, poolclass=NullPool)
else:
    test_engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

VALID_SIGNATURE = "t=1,v1=valid"


class FakeGateway(PaymentGateway):
    """In-memory processor: sessions are dicts, webhooks are plain JSON."""

    def __init__(self):
        self.sessions: dict[str, dict] = {}

    async def create_checkout_session(self, amount_cents, currency, description, customer_email, metadata):
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions[session_id] = {
            "amount_cents": amount_cents,
            "currency": currency,
            "customer_email": customer_email,
            "metadata": dict(metadata),
            "paid": False,
        }
        return CheckoutSession(session_id=session_id, url=f"https://checkout.example.com/{session_id}")

    def parse_webhook(self, payload, signature):
        if signature != VALID_SIGNATURE:
            raise PaymentVerificationError("Invalid webhook signature")
        event = json.loads(payload)
        return event_from_object(event["type"], event["data"]["object"])

    async def retrieve_session(self, session_id):
        if session_id not in self.sessions:
            raise PaymentVerificationError("Unknown checkout session", session_id=session_id)
        session = self.sessions[session_id]
        return event_from_object(
            "checkout.session.completed",
            {
                "id": session_id,
                "payment_status": "paid" if session["paid"] else "unpaid",
                "metadata": session["metadata"],
            },
        )

    def pay(self, session_id: str) -> None:
        self.sessions[session_id]["paid"] = True


def stripe_event(event_type: str, obj: dict) -> str:
    return json.dumps({"id": "evt_test", "type": event_type, "data": {"object": obj}})


def hold_request(day: date, service: str = "Daycare", **overrides) -> ReservationCreate:
    fields = {"service": service, "date": day, "user_email": "owner@example.com", "dog_id": "dog-1"}
    fields.update(overrides)
    return ReservationCreate(**fields)


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables, hand out the session factory, then drop tables for isolation."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield TestSessionLocal

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, gateway: FakeGateway) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a fresh session per request and the fake gateway."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def day() -> date:
    """A bookable date a week out."""
    return facility_today() + timedelta(days=7)


@pytest.fixture
def admin_headers() -> dict:
    token = create_access_token("admin@example.com", role="admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer_headers() -> dict:
    token = create_access_token("owner@example.com")
    return {"Authorization": f"Bearer {token}"}
