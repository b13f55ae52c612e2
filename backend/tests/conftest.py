"""
Pytest fixtures for test database, client, gateway and authentication.

Each test gets its own SQLite file (WAL, busy timeout) so concurrency tests
can open several real connections. Set TEST_DATABASE_URL to run against
PostgreSQL instead.
"""

import os

# Before any boxoffice import: settings are read once at import time
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("SWEEP_ENABLED", "false")
os.environ.setdefault("PAYMENT_GATEWAY", "mock")

from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from boxoffice.main import app
from boxoffice.db.base import Base
from boxoffice.db.session import get_db
from boxoffice.core.security import create_access_token, get_current_buyer_id
from boxoffice.models import AddOn, Event, EventAddOnLink, TicketType
from boxoffice.services.gateway_factory import get_payment_gateway
from boxoffice.services.interfaces.mock_gateway import MockGateway
from boxoffice.services.poll_throttle import PollThrottle, get_poll_throttle
from boxoffice.services import intent_store, inventory_ledger
from boxoffice.services.selection_validator import ResolvedSelection, ResolvedTicketLine

BUYER_ID = 1
OTHER_BUYER_ID = 2


async def _no_redis():
    return None


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Fresh schema per test."""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'boxoffice.db'}"
    test_engine = create_async_engine(url, echo=False, poolclass=NullPool)

    if test_engine.dialect.name == "sqlite":
        @event.listens_for(test_engine.sync_engine, "connect")
        def sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA busy_timeout=10000;")
            cursor.close()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway() -> MockGateway:
    """Sessions stay unsettled until the test calls `gateway.settle()`."""
    return MockGateway()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, gateway) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with DB, gateway and throttle dependencies overridden."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_poll_throttle] = lambda: PollThrottle(redis_provider=_no_redis)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict:
    token = create_access_token(data={"sub": str(BUYER_ID)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers() -> dict:
    token = create_access_token(data={"sub": str(OTHER_BUYER_ID)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def as_buyer():
    """Bypass JWT for tests that only care about the buyer id."""
    app.dependency_overrides[get_current_buyer_id] = lambda: BUYER_ID
    yield BUYER_ID
    app.dependency_overrides.pop(get_current_buyer_id, None)


@pytest_asyncio.fixture
async def test_event(db_session: AsyncSession) -> Event:
    event_row = Event(
        title="Test Concert",
        start_date=datetime.now(timezone.utc) + timedelta(days=30),
        organizer_id=99,
    )
    db_session.add(event_row)
    await db_session.commit()
    return event_row


@pytest_asyncio.fixture
async def ga_ticket_type(db_session: AsyncSession, test_event: Event) -> TicketType:
    """General admission: 100 units at 10.00."""
    ticket_type = TicketType(
        event_id=test_event.id,
        name="GA",
        price=Decimal("10.00"),
        total_quantity=100,
        available_quantity=100,
    )
    db_session.add(ticket_type)
    await db_session.commit()
    return ticket_type


@pytest_asyncio.fixture
async def vip_ticket_type(db_session: AsyncSession, test_event: Event) -> TicketType:
    """Person-scoped, 5 units at 50.00."""
    ticket_type = TicketType(
        event_id=test_event.id,
        name="VIP",
        price=Decimal("50.00"),
        total_quantity=5,
        available_quantity=5,
        is_person_scoped=True,
    )
    db_session.add(ticket_type)
    await db_session.commit()
    return ticket_type


@pytest_asyncio.fixture
async def parking_add_on(db_session: AsyncSession, test_event: Event) -> AddOn:
    add_on = AddOn(name="Parking", description="Lot B", price=Decimal("2.50"))
    db_session.add(add_on)
    await db_session.flush()
    db_session.add(
        EventAddOnLink(event_id=test_event.id, add_on_id=add_on.id, max_quantity=2)
    )
    await db_session.commit()
    return add_on


async def available_quantity(session_factory, ticket_type_id: int) -> int:
    """Read the committed counter through a fresh session."""
    async with session_factory() as session:
        result = await session.execute(
            select(TicketType.available_quantity).where(TicketType.id == ticket_type_id)
        )
        return result.scalar_one()


async def open_intent(
    session_factory,
    ticket_type: TicketType,
    quantity: int = 2,
    session_id: str = "sess_1",
    buyer_id: int = BUYER_ID,
    created_at: datetime = None,
) -> str:
    """Reserve `quantity` units and record the intent, as checkout does."""

    selection = ResolvedSelection(
        event_id=ticket_type.event_id,
        tickets=[
            ResolvedTicketLine(
                ticket_type_id=ticket_type.id,
                name=ticket_type.name,
                quantity=quantity,
                unit_price=Decimal(ticket_type.price),
            )
        ],
        add_ons=[],
    )
    async with session_factory() as session:
        await inventory_ledger.reserve(session, ticket_type.id, quantity)
        intent = await intent_store.create(
            session,
            session_id,
            buyer_id,
            ticket_type.event_id,
            selection,
            client_reference=f"order_{session_id}",
            amount=selection.amount,
            currency="OMR",
        )
        if created_at is not None:
            intent.created_at = created_at
        await session.commit()
    return session_id
