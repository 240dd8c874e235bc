"""
Concurrent booking tests.

These fire many booking requests at once, each on its own session and
connection. SQLite's default deferred transactions fail fast with "database
is locked" when two readers both try to upgrade to writers, so this module
runs on an engine that opens every transaction with BEGIN IMMEDIATE. That
serializes writers the way row locks would on a server database; the
invariants under test are still enforced by the engine and the indexes.
"""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from shuttle_booking.core.errors import (
    BookingError,
    DuplicateBookingError,
    NoSeatsAvailableError,
    SeatTakenError,
    TimeConflictError,
)
from shuttle_booking.db.base import Base
from shuttle_booking.models import Reservation, Shuttle, Trip, User
from shuttle_booking.services.booking_service import book_seat
from shuttle_booking.services.cancellation_service import cancel_reservation


@pytest_asyncio.fixture
async def serialized_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


async def _seed(factory, passengers: int, trips: list[tuple[str, int]]):
    async with factory() as session:
        users = [User(email=f"p{i}@example.com", name=f"Passenger {i}") for i in range(passengers)]
        session.add_all(users)
        shuttle = Shuttle(name="Night Owl", base_route="Campus - Downtown", seats_capacity=20)
        session.add(shuttle)
        await session.flush()
        trip_rows = [
            Trip(shuttle_id=shuttle.id, departure_time=label, route="Campus -> Downtown", seats_capacity=capacity)
            for label, capacity in trips
        ]
        session.add_all(trip_rows)
        await session.commit()
        return [u.id for u in users], [t.id for t in trip_rows]


async def _attempt(factory, user_id, trip_id, seat_number=None):
    async with factory() as session:
        try:
            reservation = await book_seat(session, user_id, trip_id, "Downtown", seat_number)
            return reservation.seat_number
        except BookingError as e:
            return e


async def _active_rows(factory, trip_id=None):
    async with factory() as session:
        query = select(Reservation).where(Reservation.status == "active")
        if trip_id is not None:
            query = query.where(Reservation.trip_id == trip_id)
        result = await session.execute(query)
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_concurrent_auto_assignment_never_oversells(serialized_factory, push_transport):
    user_ids, (trip_id,) = await _seed(serialized_factory, passengers=8, trips=[("07:30", 3)])

    outcomes = await asyncio.gather(*(_attempt(serialized_factory, uid, trip_id) for uid in user_ids))

    seats = sorted(o for o in outcomes if isinstance(o, int))
    refusals = [o for o in outcomes if not isinstance(o, int)]
    assert seats == [1, 2, 3]
    assert len(refusals) == 5
    assert all(isinstance(e, NoSeatsAvailableError) for e in refusals)

    rows = await _active_rows(serialized_factory, trip_id)
    assert sorted(r.seat_number for r in rows) == [1, 2, 3]


@pytest.mark.asyncio
async def test_concurrent_requests_for_same_seat(serialized_factory, push_transport):
    user_ids, (trip_id,) = await _seed(serialized_factory, passengers=6, trips=[("07:30", 10)])

    outcomes = await asyncio.gather(
        *(_attempt(serialized_factory, uid, trip_id, seat_number=4) for uid in user_ids)
    )

    winners = [o for o in outcomes if o == 4]
    assert len(winners) == 1
    assert sum(isinstance(o, SeatTakenError) for o in outcomes) == 5


@pytest.mark.asyncio
async def test_double_submit_creates_one_reservation(serialized_factory, push_transport):
    (user_id,), (trip_id,) = await _seed(serialized_factory, passengers=1, trips=[("07:30", 10)])

    outcomes = await asyncio.gather(*(_attempt(serialized_factory, user_id, trip_id) for _ in range(4)))

    assert sum(isinstance(o, int) for o in outcomes) == 1
    assert sum(isinstance(o, DuplicateBookingError) for o in outcomes) == 3
    assert len(await _active_rows(serialized_factory, trip_id)) == 1


@pytest.mark.asyncio
async def test_concurrent_bookings_on_same_departure_label(serialized_factory, push_transport):
    (user_id,), trip_ids = await _seed(
        serialized_factory, passengers=1, trips=[("09:15", 10), ("09:15", 10), ("09:15", 10)]
    )

    outcomes = await asyncio.gather(*(_attempt(serialized_factory, user_id, tid) for tid in trip_ids))

    assert sum(isinstance(o, int) for o in outcomes) == 1
    assert sum(isinstance(o, TimeConflictError) for o in outcomes) == 2
    assert len(await _active_rows(serialized_factory)) == 1


@pytest.mark.asyncio
async def test_concurrent_cancellations_succeed_once(serialized_factory, push_transport):
    (user_id,), (trip_id,) = await _seed(serialized_factory, passengers=1, trips=[("07:30", 10)])
    async with serialized_factory() as session:
        reservation = await book_seat(session, user_id, trip_id, "Downtown")
    reservation_id = reservation.id

    async def _cancel_once():
        async with serialized_factory() as session:
            try:
                await cancel_reservation(session, user_id, reservation_id)
                return "cancelled"
            except BookingError as e:
                return e.kind.value

    outcomes = await asyncio.gather(*(_cancel_once() for _ in range(3)))

    assert outcomes.count("cancelled") == 1
    assert outcomes.count("already_cancelled") == 2

    async with serialized_factory() as session:
        count = await session.scalar(
            select(func.count()).select_from(Reservation).where(Reservation.status == "cancelled")
        )
    assert count == 1
