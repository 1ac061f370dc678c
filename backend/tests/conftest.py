"""
Pytest fixtures for the test database, HTTP client, tokens and seed data.

Each test gets its own SQLite file. Transactions open with BEGIN IMMEDIATE,
so two sessions writing at once serialize the way row locks do on
PostgreSQL; the loser waits on SQLite's busy timeout instead of failing.
A session that has read anything holds that lock until it commits, so tests
that spin up extra sessions commit db_session first.
"""

import os

os.environ["ENVIRONMENT"] = "test"
os.environ["REDIS_ENABLED"] = "false"
os.environ["RESEND_API_KEY"] = ""
os.environ["TICKET_ENCRYPTION_KEY"] = "test-ticket-key"
os.environ["SECRET_KEY"] = "test-secret-key"

from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from ticketgate.main import app
from ticketgate.db.base import Base
from ticketgate.db.session import get_db
from ticketgate.core.security import create_access_token
from ticketgate.models.allocation import TierAllocation
from ticketgate.models.enums import TicketTier
from ticketgate.models.event import Event
from ticketgate.services.payload_codec import PayloadCodec, get_payload_codec
from ticketgate.services.ticket_service import Attendee, issue_ticket

USER_ID = 42
OTHER_USER_ID = 43


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'tickets.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        # Let the begin hook below own transaction start
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB dependency with the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def codec() -> PayloadCodec:
    return get_payload_codec()


@pytest.fixture
def auth_headers() -> dict:
    token = create_access_token(data={"sub": str(USER_ID)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_user_headers() -> dict:
    token = create_access_token(data={"sub": str(OTHER_USER_ID)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def staff_headers() -> dict:
    token = create_access_token(data={"sub": "door-staff-1", "role": "staff"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def second_staff_headers() -> dict:
    token = create_access_token(data={"sub": "door-staff-2", "role": "admin"})
    return {"Authorization": f"Bearer {token}"}


async def make_event(db: AsyncSession, date: datetime, name: str = "Desert Sessions") -> Event:
    ev = Event(name=name, description="Live music", date=date, location="Main Stage")
    db.add(ev)
    await db.commit()
    return ev


async def make_allocation(
    db: AsyncSession,
    ev: Event,
    tier: TicketTier,
    max_tickets: int,
    price: str = "100.00",
    sold: int = 0,
    is_active: bool = True,
) -> TierAllocation:
    allocation = TierAllocation(
        event_id=ev.id,
        tier=tier,
        max_tickets=max_tickets,
        sold_tickets=sold,
        price=Decimal(price),
        currency="USD",
        is_active=is_active,
    )
    db.add(allocation)
    await db.commit()
    return allocation


async def issue(db: AsyncSession, ev: Event, tier: TicketTier = TicketTier.EARLY_BIRD, **overrides):
    params = dict(
        event_id=ev.id,
        user_id=USER_ID,
        order_id=1001,
        tier=tier,
        attendee=Attendee(name="Amina Tazi", email="amina@example.com", phone="+212600000000"),
    )
    params.update(overrides)
    return await issue_ticket(db, **params)


@pytest_asyncio.fixture
async def test_event(db_session: AsyncSession) -> Event:
    """An event a month from now."""
    return await make_event(db_session, datetime.now(timezone.utc) + timedelta(days=30))


@pytest_asyncio.fixture
async def past_event(db_session: AsyncSession) -> Event:
    """An event that took place yesterday."""
    return await make_event(db_session, datetime.now(timezone.utc) - timedelta(days=1), name="Last Night")


@pytest_asyncio.fixture
async def early_bird(db_session: AsyncSession, test_event: Event) -> TierAllocation:
    return await make_allocation(db_session, test_event, TicketTier.EARLY_BIRD, max_tickets=50, price="150.00")


@pytest_asyncio.fixture
async def vip_single(db_session: AsyncSession, test_event: Event) -> TierAllocation:
    """One VIP seat at 100 USD."""
    return await make_allocation(db_session, test_event, TicketTier.VIP, max_tickets=1, price="100.00")
