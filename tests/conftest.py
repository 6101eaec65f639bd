"""Shared test fixtures."""

from __future__ import annotations

import itertools
import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock

# Settings are cached on first use; keep them off Postgres and Redis.
os.environ["GATORYDE_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["GATORYDE_REDIS_URL"] = ""
os.environ["GATORYDE_JWT_SECRET"] = "test-secret-with-enough-length-for-hs256"
os.environ["GATORYDE_LOG_FORMAT"] = "console"
os.environ["GATORYDE_NOTIFICATIONS_ENABLED"] = "false"

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from gatoryde.auth.jwt import create_access_token
from gatoryde.bookings.service import BookingLifecycleManager
from gatoryde.config import get_settings
from gatoryde.database import close_db, create_schema, init_db, new_session
from gatoryde.db.models import DriverProfile, Ride, User
from gatoryde.notifications.notifier import Notifier
from gatoryde.notifications.providers import NotificationTransport
from gatoryde.notifications.queue import NotificationQueue

get_settings.cache_clear()

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime = NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def sequential_ids(prefix: str = "id") -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter):04d}"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncGenerator[None, None]:
    """Fresh SQLite file per test, so concurrent sessions get their own connections."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'gatoryde.db'}")
    await create_schema()
    yield
    await close_db()


@pytest.fixture
def queue(clock: FakeClock) -> NotificationQueue:
    return NotificationQueue(clock=clock, id_factory=sequential_ids("n"))


@pytest.fixture
def notifier(queue: NotificationQueue) -> Notifier:
    return Notifier(queue)


@pytest.fixture
def manager(db: None, notifier: Notifier, clock: FakeClock) -> BookingLifecycleManager:
    return BookingLifecycleManager(notifier, clock=clock, settings=get_settings())


@pytest.fixture
def transport() -> NotificationTransport:
    """Transport whose providers are mocks."""
    email = AsyncMock()
    sms = AsyncMock()
    return NotificationTransport(email=email, sms=sms)


# ---------------------------------------------------------------------------
# Record factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(db: None) -> Callable[..., Awaitable[User]]:
    counter = itertools.count(1)

    async def _make_user(
        name: str | None = None,
        email: str | None = None,
        phone: str | None = "352-555-0100",
        is_admin: bool = False,
    ) -> User:
        n = next(counter)
        user = User(
            email=email or f"student{n}@ufl.edu",
            name=name or f"Student {n}",
            phone=phone,
            is_admin=is_admin,
        )
        async with new_session() as session:
            session.add(user)
            await session.commit()
        return user

    return _make_user


@pytest.fixture
def make_driver(make_user: Callable[..., Awaitable[User]]) -> Callable[..., Awaitable[User]]:
    async def _make_driver(
        name: str = "Dana Driver",
        verified: bool = True,
        vehicle_seats: int | None = 5,
        offered_seats: int = 4,
        cash_app_handle: str | None = "danadrives",
        zelle_handle: str | None = "dana@ufl.edu",
        **kwargs,
    ) -> User:
        user = await make_user(name=name, **kwargs)
        async with new_session() as session:
            session.add(
                DriverProfile(
                    user_id=user.id,
                    verified=verified,
                    vehicle_make="Honda",
                    vehicle_model="Civic",
                    vehicle_seats=vehicle_seats,
                    offered_seats=offered_seats,
                    cash_app_handle=cash_app_handle,
                    zelle_handle=zelle_handle,
                )
            )
            await session.commit()
        return user

    return _make_driver


@pytest.fixture
def make_ride(db: None, clock: FakeClock) -> Callable[..., Awaitable[Ride]]:
    async def _make_ride(
        driver: User,
        seats_total: int = 4,
        total_cost_cents: int = 4000,
        depart_in: timedelta = timedelta(days=1),
        status: str = "open",
    ) -> Ride:
        ride = Ride(
            driver_id=driver.id,
            origin_text="Gainesville, FL",
            origin_lat=29.6516,
            origin_lng=-82.3248,
            dest_text="Orlando, FL",
            dest_lat=28.5383,
            dest_lng=-81.3792,
            depart_at=clock() + depart_in,
            seats_total=seats_total,
            seats_available=seats_total,
            total_cost_cents=total_cost_cents,
            status=status,
            created_at=clock(),
            updated_at=clock(),
        )
        async with new_session() as session:
            session.add(ride)
            await session.commit()
        return ride

    return _make_ride


@pytest.fixture
def load(db: None) -> Callable[[type, str], Awaitable]:
    """Re-read a record in a fresh session."""

    async def _load(model: type, pk: str):
        async with new_session() as session:
            return await session.get(model, pk)

    return _load


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
def app(db: None, transport: NotificationTransport) -> FastAPI:
    """App wired to the test database and mock transport. The lifespan is not run."""
    from gatoryde.main import create_app

    return create_app(transport=transport)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    def _auth_headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}

    return _auth_headers
