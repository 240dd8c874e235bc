"""
Booking engine: concurrency-safe seat reservation.

CONCURRENCY STRATEGY: Validate, Insert, Let the Index Decide
============================================================

Problem:
  Two passengers ask for seat 1 on the same trip at the same time. Both read
  the occupancy, both see seat 1 free, both insert. Result: double booking.
  Likewise one passenger double-tapping "book" can create two reservations on
  one trip.

Solution:
  The reservations table carries two partial unique indexes restricted to
  active rows:

    uq_reservations_active_trip_seat  (trip_id, seat_number) WHERE status = 'active'
    uq_reservations_active_user_trip  (user_id, trip_id)     WHERE status = 'active'

  1. Read the trip and its current occupancy
  2. Validate the request and pick a seat (explicit, or lowest free)
  3. Check duplicate and time-conflict rules against the user's bookings
  4. INSERT and COMMIT
  5. If the commit trips one of the indexes, another request won the race;
     translate the IntegrityError into SeatTaken / DuplicateBooking

  The database is the arbiter for seat exclusivity and one-booking-per-trip.
  Nothing here holds a row lock across the validation reads.

  The time-conflict rule (no two active bookings whose trips share a
  departure label) spans different trips, so no single index covers it.
  Steps 1-4 run while holding a per-user lock (see services.locks); with the
  lock held, the conflict check and the insert are one critical section.

Lost races:
  A lost race is a definitive answer for an explicit seat (SeatTaken). For an
  automatically assigned seat it only means the chosen seat went first, so
  steps 1-4 run again on fresh occupancy, up to MAX_SEAT_ATTEMPTS times, with
  the user lock still held. A full trip then ends as NoSeatsAvailable.
"""

import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_booking.core.errors import (
    BookingError,
    DuplicateBookingError,
    InvalidArgumentError,
    NoSeatsAvailableError,
    SeatTakenError,
    TimeConflictError,
)
from shuttle_booking.core.logging import get_logger
from shuttle_booking.core.metrics import booking_latency, record_booking_attempt, record_storage_conflict
from shuttle_booking.models.notification import KIND_CONFIRMATION
from shuttle_booking.models.reservation import (
    Reservation,
    STATUS_ACTIVE,
    ACTIVE_SEAT_INDEX,
    ACTIVE_USER_TRIP_INDEX,
)
from shuttle_booking.models.trip import Trip
from shuttle_booking.services.catalog_service import get_trip, resolve_capacity
from shuttle_booking.services.inventory_service import Occupancy, build_occupancy, load_active_seats
from shuttle_booking.services.locks import acquire_user_advisory_lock, user_booking_locks
from shuttle_booking.services.notification_service import notify_reservation_event
from shuttle_booking.services.push_transport import PushTransport

logger = get_logger(__name__)

MAX_SEAT_ATTEMPTS = 3


def validate_destination(destination: Optional[str]) -> str:
    if not isinstance(destination, str) or not destination.strip():
        raise InvalidArgumentError("Destination is required", {"field": "destination"})
    return destination.strip()


def validate_requested_seat(seat_number: Optional[int], capacity: int) -> None:
    if seat_number is None:
        return
    if not 1 <= seat_number <= capacity:
        raise InvalidArgumentError(
            "invalid seat",
            {"seat_number": seat_number, "capacity": capacity},
        )


def choose_seat(occupancy: Occupancy, requested_seat: Optional[int]) -> int:
    """
    An explicit request must be free. Otherwise the lowest-numbered free
    seat is assigned, so assignment is deterministic for a given occupancy.
    """
    if requested_seat is not None:
        if occupancy.is_taken(requested_seat):
            raise SeatTakenError(occupancy.trip_id, requested_seat)
        return requested_seat

    seat = occupancy.lowest_free_seat()
    if seat is None:
        raise NoSeatsAvailableError(occupancy.trip_id, occupancy.capacity)
    return seat


async def find_active_reservation(db: AsyncSession, user_id: int, trip_id: int) -> Optional[Reservation]:
    result = await db.execute(
        select(Reservation).where(
            Reservation.user_id == user_id,
            Reservation.trip_id == trip_id,
            Reservation.status == STATUS_ACTIVE,
        )
    )
    return result.scalars().first()


async def find_time_conflict(db: AsyncSession, user_id: int, trip: Trip) -> Optional[Trip]:
    """Another trip the user is actively booked on that leaves at the same label."""
    result = await db.execute(
        select(Trip)
        .join(Reservation, Reservation.trip_id == Trip.id)
        .where(
            Reservation.user_id == user_id,
            Reservation.status == STATUS_ACTIVE,
            Reservation.trip_id != trip.id,
            Trip.departure_time == trip.departure_time,
        )
        .limit(1)
    )
    return result.scalars().first()


def _translate_integrity_error(error: IntegrityError, trip_id: int, seat_number: int) -> BookingError:
    """
    Map a unique-index violation to the domain error it stands for.
    PostgreSQL reports the index name; SQLite only lists the columns.
    """
    orig = getattr(error, "orig", None)
    diag = getattr(orig, "diag", None)
    constraint = getattr(diag, "constraint_name", None) or getattr(orig, "constraint_name", None) or ""
    text = str(orig) if orig is not None else str(error)

    if constraint == ACTIVE_SEAT_INDEX or ACTIVE_SEAT_INDEX in text or "seat_number" in text:
        record_storage_conflict(ACTIVE_SEAT_INDEX)
        return SeatTakenError(trip_id, seat_number)
    if constraint == ACTIVE_USER_TRIP_INDEX or ACTIVE_USER_TRIP_INDEX in text or "user_id" in text:
        record_storage_conflict(ACTIVE_USER_TRIP_INDEX)
        return DuplicateBookingError(trip_id)
    raise error


async def _reserve(
    db: AsyncSession,
    user_id: int,
    trip_id: int,
    destination: str,
    seat_number: Optional[int],
) -> tuple[Reservation, Trip]:
    trip = await get_trip(db, trip_id)
    destination = validate_destination(destination)
    capacity = resolve_capacity(trip)
    validate_requested_seat(seat_number, capacity)

    attempt = 1
    while True:
        try:
            return await _insert_reservation(db, user_id, trip, capacity, destination, seat_number)
        except SeatTakenError as e:
            # Only an index violation raises SeatTaken for an unassigned request.
            if seat_number is not None or attempt >= MAX_SEAT_ATTEMPTS:
                raise
            logger.info(
                "seat_race_retry",
                user_id=user_id,
                trip_id=trip_id,
                lost_seat=e.details.get("seat_number"),
                attempt=attempt,
            )
            attempt += 1
            # The rollback expired the trip; reload it (and the capacity) for the next pass.
            trip = await get_trip(db, trip_id)
            capacity = resolve_capacity(trip)


async def _insert_reservation(
    db: AsyncSession,
    user_id: int,
    trip: Trip,
    capacity: int,
    destination: str,
    seat_number: Optional[int],
) -> tuple[Reservation, Trip]:
    await acquire_user_advisory_lock(db, user_id)

    occupancy = build_occupancy(trip.id, capacity, await load_active_seats(db, trip.id))
    seat = choose_seat(occupancy, seat_number)

    existing = await find_active_reservation(db, user_id, trip.id)
    if existing is not None:
        raise DuplicateBookingError(trip.id, existing.id)

    conflicting = await find_time_conflict(db, user_id, trip)
    if conflicting is not None:
        raise TimeConflictError(
            conflicting_trip_id=conflicting.id,
            departure_time=conflicting.departure_time,
            route=conflicting.route,
            shuttle_name=conflicting.shuttle.name,
        )

    reservation = Reservation(
        user_id=user_id,
        trip_id=trip.id,
        shuttle_id=trip.shuttle_id,
        seat_number=seat,
        destination=destination,
        status=STATUS_ACTIVE,
    )
    db.add(reservation)
    target_trip_id = trip.id
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise _translate_integrity_error(e, target_trip_id, seat)

    return reservation, trip


async def book_seat(
    db: AsyncSession,
    user_id: int,
    trip_id: int,
    destination: str,
    seat_number: Optional[int] = None,
    transport: Optional[PushTransport] = None,
) -> Reservation:
    """
    Reserve a seat for `user_id` on `trip_id`.

    Checks run fail-fast in this order: trip exists, destination given,
    requested seat in range, seat free (or a free seat exists), no active
    booking on this trip, no active booking on another trip with the same
    departure label. Raises the matching BookingError subclass.
    """
    started = time.perf_counter()
    try:
        async with user_booking_locks.hold(user_id):
            try:
                reservation, trip = await _reserve(db, user_id, trip_id, destination, seat_number)
            except BookingError as e:
                if db.in_transaction():
                    await db.rollback()
                record_booking_attempt(e.kind.value)
                logger.info(
                    "booking_rejected",
                    user_id=user_id,
                    trip_id=trip_id,
                    requested_seat=seat_number,
                    reason=e.kind.value,
                )
                raise
    finally:
        booking_latency.observe(time.perf_counter() - started)

    record_booking_attempt("success")
    logger.info(
        "reservation_created",
        reservation_id=reservation.id,
        user_id=user_id,
        trip_id=trip.id,
        seat_number=reservation.seat_number,
        assigned=seat_number is None,
    )

    await notify_reservation_event(db, KIND_CONFIRMATION, reservation, trip, transport)
    return reservation


async def list_user_reservations(
    db: AsyncSession,
    user_id: int,
    include_cancelled: bool = False,
) -> list[Reservation]:
    """A user's reservations, newest first. Active only unless asked otherwise."""
    query = select(Reservation).where(Reservation.user_id == user_id)
    if not include_cancelled:
        query = query.where(Reservation.status == STATUS_ACTIVE)
    result = await db.execute(query.order_by(Reservation.created_at.desc(), Reservation.id.desc()))
    return list(result.scalars().all())
