"""
Pytest fixtures for the test database, HTTP client and authentication.

Every test gets its own SQLite file (via aiosqlite) with tables created from
the ORM metadata, so the partial unique indexes are the real ones. Each HTTP
request gets its own session, as in production.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./shuttle_booking_import.db"
os.environ["REDIS_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key"

from typing import AsyncGenerator, Callable, Optional

import jwt
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from shuttle_booking.main import app
from shuttle_booking.core.config import get_settings
from shuttle_booking.db.base import Base
from shuttle_booking.db.session import get_db
from shuttle_booking.models import Shuttle, Trip, User
from shuttle_booking.services.booking_service import book_seat
from shuttle_booking.services.cancellation_service import cancel_reservation
from shuttle_booking.services.inventory_service import get_occupancy
from shuttle_booking.services.push_transport import get_push_transport, set_push_transport


class RecordingPushTransport:
    """Collects every push instead of delivering it."""

    def __init__(self, fail: bool = False, accept: bool = True):
        self.fail = fail
        self.accept = accept
        self.sent: list[dict] = []

    async def send(self, device_tokens, title, body, data=None) -> bool:
        if self.fail:
            raise ConnectionError("push gateway unreachable")
        self.sent.append({"device_tokens": device_tokens, "title": title, "body": body, "data": data or {}})
        return self.accept


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shuttle_booking_test.db'}", echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each run on a fresh test-database session."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def push_transport():
    previous = get_push_transport()
    recorder = RecordingPushTransport()
    set_push_transport(recorder)
    yield recorder
    set_push_transport(previous)


@pytest.fixture
def failing_push_transport():
    previous = get_push_transport()
    broken = RecordingPushTransport(fail=True)
    set_push_transport(broken)
    yield broken
    set_push_transport(previous)


async def _create_user(db: AsyncSession, email: str, name: str, role: str = "passenger", device_token: Optional[str] = None) -> User:
    user = User(email=email, name=name, role=role, device_token=device_token)
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def alice(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "alice@example.com", "Alice", device_token="device-alice")


@pytest_asyncio.fixture
async def bob(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "bob@example.com", "Bob", device_token="device-bob")


@pytest_asyncio.fixture
async def carol(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "carol@example.com", "Carol")


@pytest_asyncio.fixture
async def driver(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "driver@example.com", "Dan Driver", role="driver", device_token="device-driver")


@pytest_asyncio.fixture
async def shuttle(db_session: AsyncSession, driver: User) -> Shuttle:
    shuttle = Shuttle(name="Campus Shuttle", base_route="Campus - Station", seats_capacity=20, driver_id=driver.id)
    db_session.add(shuttle)
    await db_session.commit()
    return shuttle


@pytest_asyncio.fixture
async def make_trip(db_session: AsyncSession, shuttle: Shuttle) -> Callable:
    async def _make_trip(
        departure_time: str = "08:00",
        seats_capacity: Optional[int] = 20,
        route: str = "Campus -> Station",
        direction: str = "forward",
        shuttle_id: Optional[int] = None,
    ) -> Trip:
        trip = Trip(
            shuttle_id=shuttle_id or shuttle.id,
            departure_time=departure_time,
            route=route,
            direction=direction,
            seats_capacity=seats_capacity,
        )
        db_session.add(trip)
        await db_session.commit()
        return trip

    return _make_trip


@pytest_asyncio.fixture
async def trip(make_trip) -> Trip:
    """A 20-seat trip leaving at 08:00."""
    return await make_trip()


def auth_headers_for(user: User) -> dict:
    settings = get_settings()
    token = jwt.encode({"sub": str(user.id)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def alice_headers(alice: User) -> dict:
    return auth_headers_for(alice)


@pytest.fixture
def bob_headers(bob: User) -> dict:
    return auth_headers_for(bob)


@pytest.fixture
def driver_headers(driver: User) -> dict:
    return auth_headers_for(driver)


@pytest_asyncio.fixture
async def book(session_factory) -> Callable:
    """Run the booking engine on a fresh session, like one request would."""

    async def _book(user: User, trip: Trip, destination: str = "Station", seat_number: Optional[int] = None, **kwargs):
        async with session_factory() as session:
            return await book_seat(session, user.id, trip.id, destination, seat_number, **kwargs)

    return _book


@pytest_asyncio.fixture
async def cancel(session_factory) -> Callable:
    async def _cancel(user: User, reservation_id: int, **kwargs):
        async with session_factory() as session:
            return await cancel_reservation(session, user.id, reservation_id, **kwargs)

    return _cancel


@pytest_asyncio.fixture
async def occupancy(session_factory) -> Callable:
    async def _occupancy(trip: Trip):
        async with session_factory() as session:
            return await get_occupancy(session, trip.id)

    return _occupancy
