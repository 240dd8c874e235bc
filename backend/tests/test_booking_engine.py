"""
Tests for the booking engine: validation order, seat assignment and the
three reservation invariants.
"""

import pytest
from sqlalchemy import func, select

from shuttle_booking.core.errors import (
    DuplicateBookingError,
    InvalidArgumentError,
    NoSeatsAvailableError,
    NotFoundError,
    SeatTakenError,
    TimeConflictError,
)
from shuttle_booking.models import Notification, Reservation, Trip, User
from shuttle_booking.services import booking_service, notification_service
from shuttle_booking.services.booking_service import choose_seat, list_user_reservations
from shuttle_booking.services.inventory_service import build_occupancy


@pytest.mark.asyncio
async def test_seats_assigned_in_order_until_full(book, make_trip, alice, bob, carol):
    """Capacity 2: first two bookings get seats 1 and 2, the third is refused."""
    trip = await make_trip(seats_capacity=2)

    first = await book(alice, trip, "X")
    second = await book(bob, trip, "Y")
    assert first.seat_number == 1
    assert second.seat_number == 2
    assert first.status == "active"

    with pytest.raises(NoSeatsAvailableError):
        await book(carol, trip, "Z")


@pytest.mark.asyncio
async def test_lowest_free_seat_is_assigned(db_session, book, make_trip, alice):
    trip = await make_trip(seats_capacity=5)
    for user_number, seat in enumerate([1, 2, 4]):
        user = User(email=f"rider{user_number}@example.com", name=f"Rider {user_number}")
        db_session.add(user)
        await db_session.flush()
        db_session.add(Reservation(user_id=user.id, trip_id=trip.id, shuttle_id=trip.shuttle_id,
                                   seat_number=seat, destination="Station"))
    await db_session.commit()

    reservation = await book(alice, trip, "Station")
    assert reservation.seat_number == 3


def test_choose_seat_is_deterministic():
    occupancy = build_occupancy(trip_id=1, capacity=5, seat_numbers=[1, 2, 4])
    assert choose_seat(occupancy, None) == 3
    assert choose_seat(occupancy, 5) == 5
    with pytest.raises(SeatTakenError):
        choose_seat(occupancy, 4)


@pytest.mark.asyncio
async def test_requested_seat_is_honoured(book, trip, alice):
    reservation = await book(alice, trip, "Station", seat_number=7)
    assert reservation.seat_number == 7


@pytest.mark.asyncio
async def test_requested_seat_already_taken(book, trip, alice, bob):
    await book(alice, trip, "X", seat_number=1)
    with pytest.raises(SeatTakenError) as exc_info:
        await book(bob, trip, "Y", seat_number=1)
    assert exc_info.value.details == {"trip_id": trip.id, "seat_number": 1}


@pytest.mark.asyncio
@pytest.mark.parametrize("seat", [0, -3, 21])
async def test_requested_seat_out_of_range(book, trip, alice, seat):
    with pytest.raises(InvalidArgumentError) as exc_info:
        await book(alice, trip, "Station", seat_number=seat)
    assert exc_info.value.message == "invalid seat"


@pytest.mark.asyncio
@pytest.mark.parametrize("destination", ["", "   "])
async def test_destination_required(book, trip, alice, destination):
    with pytest.raises(InvalidArgumentError):
        await book(alice, trip, destination)


@pytest.mark.asyncio
async def test_destination_is_trimmed(book, trip, alice):
    reservation = await book(alice, trip, "  Main Gate ")
    assert reservation.destination == "Main Gate"


@pytest.mark.asyncio
async def test_unknown_trip_is_checked_first(session_factory, alice):
    """A missing trip wins over every other problem with the request."""
    async with session_factory() as session:
        with pytest.raises(NotFoundError):
            await booking_service.book_seat(session, alice.id, 424242, "", seat_number=-1)


@pytest.mark.asyncio
async def test_duplicate_booking_same_trip(book, trip, alice):
    first = await book(alice, trip, "X")
    with pytest.raises(DuplicateBookingError) as exc_info:
        await book(alice, trip, "Y")
    assert exc_info.value.details["reservation_id"] == first.id


@pytest.mark.asyncio
async def test_time_conflict_with_same_departure_label(book, make_trip, alice):
    morning = await make_trip(departure_time="08:00", route="Campus -> Station")
    other_morning = await make_trip(departure_time="08:00", route="Station -> Campus", direction="reverse")

    await book(alice, morning, "X")
    with pytest.raises(TimeConflictError) as exc_info:
        await book(alice, other_morning, "Y")

    details = exc_info.value.details
    assert details["conflicting_trip_id"] == morning.id
    assert details["departure_time"] == "08:00"
    assert details["route"] == "Campus -> Station"
    assert details["shuttle_name"] == "Campus Shuttle"


@pytest.mark.asyncio
async def test_different_departure_labels_do_not_conflict(book, make_trip, alice):
    morning = await make_trip(departure_time="08:00")
    noon = await make_trip(departure_time="12:00")
    await book(alice, morning, "X")
    reservation = await book(alice, noon, "Y")
    assert reservation.trip_id == noon.id


@pytest.mark.asyncio
async def test_cancelled_booking_does_not_block_rebooking(book, cancel, make_trip, alice):
    morning = await make_trip(departure_time="08:00")
    other_morning = await make_trip(departure_time="08:00")

    first = await book(alice, morning, "X")
    await cancel(alice, first.id)

    again = await book(alice, morning, "X")
    assert again.seat_number == 1
    await cancel(alice, again.id)
    elsewhere = await book(alice, other_morning, "Y")
    assert elsewhere.trip_id == other_morning.id


@pytest.mark.asyncio
async def test_seat_check_precedes_duplicate_check(book, make_trip, alice):
    """On a full trip the passenger hears about the seat, matching the check order."""
    trip = await make_trip(seats_capacity=1)
    await book(alice, trip, "X")
    with pytest.raises(NoSeatsAvailableError):
        await book(alice, trip, "Y")


@pytest.mark.asyncio
async def test_storage_index_rejects_stale_explicit_seat(db_session, book, trip, alice, bob, monkeypatch):
    """
    Simulate losing a race for a requested seat: the engine reads stale
    occupancy and the partial unique index turns the insert into SeatTaken.
    """
    db_session.add(Reservation(user_id=bob.id, trip_id=trip.id, shuttle_id=trip.shuttle_id,
                               seat_number=1, destination="Y"))
    await db_session.commit()

    async def stale_seats(db, trip_id):
        return []

    monkeypatch.setattr(booking_service, "load_active_seats", stale_seats)

    with pytest.raises(SeatTakenError):
        await book(alice, trip, "X", seat_number=1)


@pytest.mark.asyncio
async def test_assigned_seat_retries_after_losing_race(db_session, book, trip, alice, bob, monkeypatch):
    """An unassigned request that loses seat 1 at insert time moves on to seat 2."""
    db_session.add(Reservation(user_id=bob.id, trip_id=trip.id, shuttle_id=trip.shuttle_id,
                               seat_number=1, destination="Y"))
    await db_session.commit()

    real_load = booking_service.load_active_seats
    calls = []

    async def stale_once(db, trip_id):
        calls.append(trip_id)
        if len(calls) == 1:
            return []
        return await real_load(db, trip_id)

    monkeypatch.setattr(booking_service, "load_active_seats", stale_once)

    reservation = await book(alice, trip, "X")

    assert reservation.seat_number == 2
    assert len(calls) == 2
    count = await db_session.scalar(
        select(func.count()).select_from(Reservation).where(Reservation.user_id == alice.id)
    )
    assert count == 1


@pytest.mark.asyncio
async def test_assigned_seat_retries_are_bounded(db_session, book, trip, alice, bob, monkeypatch):
    db_session.add(Reservation(user_id=bob.id, trip_id=trip.id, shuttle_id=trip.shuttle_id,
                               seat_number=1, destination="Y"))
    await db_session.commit()

    calls = []

    async def always_stale(db, trip_id):
        calls.append(trip_id)
        return []

    monkeypatch.setattr(booking_service, "load_active_seats", always_stale)

    with pytest.raises(SeatTakenError):
        await book(alice, trip, "X")
    assert len(calls) == booking_service.MAX_SEAT_ATTEMPTS


@pytest.mark.asyncio
async def test_storage_index_rejects_duplicate(db_session, book, trip, alice, monkeypatch):
    db_session.add(Reservation(user_id=alice.id, trip_id=trip.id, shuttle_id=trip.shuttle_id,
                               seat_number=5, destination="Y"))
    await db_session.commit()

    async def no_existing(db, user_id, trip_id):
        return None

    monkeypatch.setattr(booking_service, "find_active_reservation", no_existing)

    with pytest.raises(DuplicateBookingError):
        await book(alice, trip, "X")


@pytest.mark.asyncio
async def test_rejected_booking_leaves_no_row(db_session, book, make_trip, alice, bob):
    trip = await make_trip(seats_capacity=1)
    await book(alice, trip, "X")
    with pytest.raises(NoSeatsAvailableError):
        await book(bob, trip, "Y")

    result = await db_session.execute(select(Reservation).where(Reservation.trip_id == trip.id))
    assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_list_active_by_user(db_session, book, cancel, make_trip, alice):
    morning = await make_trip(departure_time="08:00")
    noon = await make_trip(departure_time="12:00")
    kept = await book(alice, morning, "X")
    dropped = await book(alice, noon, "Y")
    await cancel(alice, dropped.id)

    active = await list_user_reservations(db_session, alice.id)
    assert [r.id for r in active] == [kept.id]

    history = await list_user_reservations(db_session, alice.id, include_cancelled=True)
    assert [r.id for r in history] == [dropped.id, kept.id]


@pytest.mark.asyncio
async def test_invariants_hold_after_mixed_traffic(db_session, book, cancel, make_trip, alice, bob, carol):
    morning = await make_trip(departure_time="08:00", seats_capacity=3)
    other_morning = await make_trip(departure_time="08:00", seats_capacity=3)
    evening = await make_trip(departure_time="18:00", seats_capacity=3)

    attempts = [
        (alice, morning, None), (bob, morning, 1), (carol, morning, None),
        (alice, other_morning, None), (bob, evening, 2), (alice, evening, 2),
        (alice, morning, None), (carol, evening, None),
    ]
    for user, trip, seat in attempts:
        try:
            await book(user, trip, "Somewhere", seat_number=seat)
        except (SeatTakenError, NoSeatsAvailableError, DuplicateBookingError, TimeConflictError):
            pass

    result = await db_session.execute(
        select(Reservation, Trip).join(Trip, Trip.id == Reservation.trip_id).where(Reservation.status == "active")
    )
    rows = result.all()

    seats = [(r.trip_id, r.seat_number) for r, _ in rows]
    assert len(seats) == len(set(seats))

    user_trips = [(r.user_id, r.trip_id) for r, _ in rows]
    assert len(user_trips) == len(set(user_trips))

    user_labels = [(r.user_id, t.departure_time) for r, t in rows]
    assert len(user_labels) == len(set(user_labels))


@pytest.mark.asyncio
async def test_confirmation_goes_to_passenger_and_driver(db_session, book, trip, alice, driver, push_transport):
    reservation = await book(alice, trip, "Library", seat_number=3)

    result = await db_session.execute(select(Notification).order_by(Notification.id))
    notices = result.scalars().all()
    assert [(n.user_id, n.kind) for n in notices] == [(alice.id, "confirmation"), (driver.id, "confirmation")]
    assert all(n.reservation_id == reservation.id for n in notices)
    assert all(n.is_sent for n in notices)
    assert notices[0].message == "Seat 3 on the 08:00 trip to Library is confirmed."
    assert notices[1].title == "New passenger"

    assert push_transport.sent[0]["device_tokens"] == ["device-alice"]
    assert push_transport.sent[0]["data"]["reservation_id"] == reservation.id


@pytest.mark.asyncio
async def test_passenger_without_device_is_still_recorded(db_session, book, trip, carol, push_transport):
    await book(carol, trip, "Library")

    result = await db_session.execute(select(Notification).where(Notification.user_id == carol.id))
    notice = result.scalar_one()
    assert notice.kind == "confirmation"
    assert push_transport.sent[0]["device_tokens"] == []


@pytest.mark.asyncio
async def test_declined_push_still_marks_notice_sent(db_session, book, trip, alice, push_transport):
    """A transport that reports no delivery has still been handed the notice."""
    push_transport.accept = False

    await book(alice, trip, "X")

    result = await db_session.execute(select(Notification).where(Notification.user_id == alice.id))
    notice = result.scalar_one()
    assert notice.is_sent is True
    assert notice.sent_at is not None
    assert len(push_transport.sent) == 2


@pytest.mark.asyncio
async def test_push_failure_does_not_undo_booking(db_session, book, trip, alice, failing_push_transport):
    reservation = await book(alice, trip, "X")
    assert reservation.status == "active"

    stored = await db_session.get(Reservation, reservation.id)
    assert stored.status == "active"

    result = await db_session.execute(select(Notification).where(Notification.user_id == alice.id))
    notice = result.scalar_one()
    assert notice.is_sent is False


@pytest.mark.asyncio
async def test_notification_store_failure_does_not_undo_booking(db_session, book, trip, alice, monkeypatch):
    def broken_build(*args, **kwargs):
        raise RuntimeError("template missing")

    monkeypatch.setattr(notification_service, "build_notification", broken_build)

    reservation = await book(alice, trip, "X")

    stored = await db_session.get(Reservation, reservation.id)
    assert stored.status == "active"
    count = await db_session.scalar(select(func.count()).select_from(Notification))
    assert count == 0
