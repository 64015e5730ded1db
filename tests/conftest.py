"""
Pytest configuration and core fixtures.

Every test gets its own in-memory SQLite database with the full schema, a
fresh rate limiter, and fake delivery channels, so nothing leaks between
tests and nothing leaves the process.
"""

import os
from datetime import timedelta
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool


def pytest_configure(config):
    """Configure the environment before the application is imported."""
    os.environ["ENVIRONMENT"] = "test"
    os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
    os.environ["OTP_BCRYPT_ROUNDS"] = "4"
    os.environ["ENABLE_SCHEDULER"] = "false"
    os.environ["RATE_LIMIT_BACKEND"] = "memory"


class FakeChannel:
    """
    Stand-in for a message channel that records what it was asked to send.

    Args:
        name: Channel name reported in logs.
        succeed: Whether sends report success.
        delay: Seconds each send takes.
    """

    def __init__(self, name: str, succeed: bool = True, delay: float = 0.0):
        self.name = name
        self.succeed = succeed
        self.delay = delay
        self.sent: list[tuple[str, str]] = []

    async def send_code(self, contact: str, code: str):
        import asyncio

        from app.core.services.channels import SendResult

        if self.delay:
            await asyncio.sleep(self.delay)
        self.sent.append((contact, code))
        if self.succeed:
            return SendResult(success=True, message_id=f"{self.name}-1")
        return SendResult(success=False, error=f"{self.name} unavailable")

    async def status(self) -> dict:
        return {"enabled": self.succeed}

    @property
    def last_code(self) -> str | None:
        return self.sent[-1][1] if self.sent else None


@pytest.fixture
async def engine():
    """A private in-memory database with every table created."""
    from app.core.config import settings
    from app.core.db import Base
    import app.core.db.models  # noqa: F401

    test_engine = create_async_engine(
        settings.TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield test_engine
    finally:
        await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def fresh_rate_limiter():
    """Give every test an empty in-memory rate limit window."""
    from app.core.services.rate_limit import MemoryBackend, otp_rate_limiter

    original = otp_rate_limiter._backend
    otp_rate_limiter._backend = MemoryBackend()
    try:
        yield otp_rate_limiter
    finally:
        otp_rate_limiter._backend = original


@pytest.fixture
def whatsapp_channel() -> FakeChannel:
    return FakeChannel("whatsapp")


@pytest.fixture
def email_channel() -> FakeChannel:
    return FakeChannel("email")


@pytest.fixture
def orchestrator(whatsapp_channel, email_channel, session_factory):
    """Delivery orchestrator wired to fake channels and the test database."""
    from app.core.services.delivery import ChannelOrchestrator

    return ChannelOrchestrator(
        primary=whatsapp_channel,
        secondary=email_channel,
        deadline=0.5,
        session_factory=session_factory,
    )


@pytest.fixture(autouse=True)
def patch_delivery(orchestrator):
    """Route every issued code through the fake channels."""
    from app.core.services.challenge import challenge_service

    with patch.object(challenge_service, "orchestrator", orchestrator), patch(
        "app.apps.checkout.routers.otp.channel_orchestrator", orchestrator
    ):
        yield orchestrator


@pytest.fixture
def app():
    """Create FastAPI application for testing."""
    from app.main import app as fastapi_app

    return fastapi_app


@pytest.fixture
async def client(app, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client; each request gets its own session."""
    from app.core.dependencies import get_async_session

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_session

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_async_session, None)


@pytest.fixture
async def make_challenge(db_session: AsyncSession):
    """Factory inserting a challenge for a known plaintext code."""
    from app.core.db.crud import otp_challenge_db
    from app.core.db.models.base import utcnow
    from app.core.enums import OTPPurpose
    from app.core.utils import hash_otp_code

    async def _make(
        code: str = "123456",
        contact_key: str = "+15550001111",
        purpose: OTPPurpose = OTPPurpose.CHECKOUT,
        phone: str | None = "+15550001111",
        email: str | None = None,
        expires_in: timedelta = timedelta(minutes=10),
        **extra,
    ):
        return await otp_challenge_db.create(
            db_session,
            {
                "contact_key": contact_key,
                "phone": phone,
                "email": email,
                "purpose": purpose,
                "code_hash": hash_otp_code(code),
                "max_attempts": 3,
                "expires_at": utcnow() + expires_in,
                **extra,
            },
        )

    return _make


@pytest.fixture
async def make_order(db_session: AsyncSession):
    """Factory inserting an order for a phone."""
    from app.core.db.models import OrderRecord

    counter = {"n": 0}

    async def _make(
        phone: str = "+15550002222",
        status: str = "shipped",
        total: Decimal = Decimal("49.90"),
        order_number: str | None = None,
    ):
        counter["n"] += 1
        order = OrderRecord(
            order_number=order_number or f"ORD-{1000 + counter['n']}",
            phone=phone,
            status=status,
            total=total,
            currency="USD",
        )
        db_session.add(order)
        await db_session.commit()
        return order

    return _make


@pytest.fixture
def fake_channel():
    """The FakeChannel class, for tests that build their own channels."""
    return FakeChannel
