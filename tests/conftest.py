"""
Pytest configuration and fixtures.

Every test gets its own on-disk SQLite database and a fake Paystack gateway
injected through the component constructors.
"""
import asyncio
import os
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

# Settings are read at import time by several modules
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_community_payments_secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./community_payments_test.db")
os.environ.setdefault("APP_ENV", "test")
os.environ["GATEWAY_RETRY_BASE_DELAY"] = "0"

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from community_payments.config import Settings, get_settings
from community_payments.core.services import Services, build_services
from community_payments.database.connection import create_session_factory
from community_payments.database.models import Base, Booking, Event, EventAttendee
from community_payments.integrations.paystack_client import (
    GatewayAuthorization,
    GatewayDeclinedError,
    GatewayVerification,
    ResolvedAccount,
)


class FakeGateway:
    """
    In-memory stand-in for PaystackClient.

    Verification outcomes are scripted per reference; an unscripted
    reference reports ``ongoing`` (still pending).
    """

    def __init__(self) -> None:
        self.initialized: List[Dict[str, Any]] = []
        self.outcomes: Dict[str, GatewayVerification] = {}
        self.verify_errors: Dict[str, List[Exception]] = {}
        self.verify_calls: Dict[str, int] = {}
        self.accounts: Dict[Tuple[str, str], str] = {}
        self.resolve_error: Optional[Exception] = None
        self.initialize_error: Optional[Exception] = None

    async def initialize_transaction(
        self,
        email: str,
        amount_minor: int,
        currency: str,
        reference: str,
        metadata: Optional[Dict[str, Any]] = None,
        callback_url: Optional[str] = None,
    ) -> GatewayAuthorization:
        if self.initialize_error is not None:
            raise self.initialize_error
        self.initialized.append(
            {
                "email": email,
                "amount_minor": amount_minor,
                "currency": currency,
                "reference": reference,
                "metadata": metadata,
                "callback_url": callback_url,
            }
        )
        return GatewayAuthorization(
            authorization_url=f"https://checkout.paystack.com/{reference.lower()}",
            access_code=f"ac_{reference[-8:].lower()}",
            provider_reference=reference,
        )

    def succeed(
        self,
        reference: str,
        amount_minor: Optional[int] = None,
        currency: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> None:
        self.outcomes[reference] = GatewayVerification(
            raw_status="success",
            amount_minor=amount_minor,
            currency=currency,
            paid_at=paid_at,
            gateway_response="Approved",
        )

    def decline(self, reference: str) -> None:
        self.outcomes[reference] = GatewayVerification(
            raw_status="failed", gateway_response="Declined"
        )

    def fail_next_verify(self, reference: str, error: Exception) -> None:
        self.verify_errors.setdefault(reference, []).append(error)

    async def verify_transaction(self, provider_reference: str) -> GatewayVerification:
        self.verify_calls[provider_reference] = self.verify_calls.get(provider_reference, 0) + 1
        # Yield so concurrent verifications interleave
        await asyncio.sleep(0)
        errors = self.verify_errors.get(provider_reference)
        if errors:
            raise errors.pop(0)
        return self.outcomes.get(provider_reference, GatewayVerification(raw_status="ongoing"))

    def register_account(self, account_number: str, bank_code: str, account_name: str) -> None:
        self.accounts[(account_number, bank_code)] = account_name

    async def resolve_account(self, account_number: str, bank_code: str) -> ResolvedAccount:
        if self.resolve_error is not None:
            raise self.resolve_error
        name = self.accounts.get((account_number, bank_code))
        if name is None:
            raise GatewayDeclinedError("Could not resolve account name", http_status=422)
        return ResolvedAccount(account_name=name, account_number=account_number)


@pytest.fixture
def test_settings() -> Settings:
    """Settings shared with the code under test."""
    return get_settings()


@pytest_asyncio.fixture
async def engine(tmp_path: Any) -> AsyncGenerator[AsyncEngine, Any]:
    """Fresh on-disk SQLite database per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def services(
    session_factory: async_sessionmaker[AsyncSession],
    gateway: FakeGateway,
    test_settings: Settings,
) -> Services:
    return build_services(session_factory, gateway, test_settings)


@pytest.fixture
def ledger(services: Services) -> Any:
    return services.ledger


@pytest.fixture
def capacity(services: Services) -> Any:
    return services.capacity


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest_asyncio.fixture
async def make_booking(session_factory: async_sessionmaker[AsyncSession]) -> Any:
    """Factory inserting a booking row."""

    async def _make(
        user_id: uuid.UUID,
        price: Decimal = Decimal("5000"),
        status: str = "pending",
        payment_status: str = "pending",
    ) -> Booking:
        booking = Booking(
            id=uuid.uuid4(),
            user_id=user_id,
            provider_id=uuid.uuid4(),
            service_name="Plumbing repair",
            status=status,
            payment_status=payment_status,
            price=price,
        )
        async with session_factory() as db:
            db.add(booking)
            await db.commit()
        return booking

    return _make


@pytest_asyncio.fixture
async def make_event(session_factory: async_sessionmaker[AsyncSession]) -> Any:
    """Factory inserting an event row."""

    async def _make(
        max_attendees: Optional[int] = None,
        is_free: bool = True,
        price: Optional[Decimal] = None,
        allow_guests: bool = True,
    ) -> Event:
        event = Event(
            id=uuid.uuid4(),
            organizer_id=uuid.uuid4(),
            title="Estate cleanup day",
            is_free=is_free,
            price=price,
            currency="NGN",
            max_attendees=max_attendees,
            allow_guests=allow_guests,
            attendees_count=0,
            version=0,
        )
        async with session_factory() as db:
            db.add(event)
            await db.commit()
        return event

    return _make


@pytest.fixture
def load(session_factory: async_sessionmaker[AsyncSession]) -> Any:
    """Re-read a row by primary key in a fresh session."""

    async def _load(model: Any, pk: Any) -> Any:
        async with session_factory() as db:
            return await db.get(model, pk)

    return _load


@pytest.fixture
def attendee_of(session_factory: async_sessionmaker[AsyncSession]) -> Any:
    async def _find(event_id: uuid.UUID, user_id: uuid.UUID) -> Optional[EventAttendee]:
        async with session_factory() as db:
            stmt = select(EventAttendee).where(
                EventAttendee.event_id == event_id, EventAttendee.user_id == user_id
            )
            return (await db.execute(stmt)).scalar_one_or_none()

    return _find


class FakeRedis:
    """Just enough of redis.asyncio.Redis for dedup, streams and health checks."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.values: Dict[str, Any] = {}
        self.ttls: Dict[str, int] = {}
        self.streams: Dict[str, List[Dict[str, Any]]] = {}

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("redis unavailable")

    async def exists(self, key: str) -> int:
        self._check()
        return int(key in self.values)

    async def setex(self, key: str, ttl: int, value: Any) -> None:
        self._check()
        self.values[key] = value
        self.ttls[key] = ttl

    async def xadd(self, stream: str, fields: Dict[str, Any]) -> str:
        self._check()
        entries = self.streams.setdefault(stream, [])
        entries.append(fields)
        return f"{len(entries)}-0"

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        pass


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
