"""
Read-only access to shuttles and trips.

The catalog is seeded outside this service. Capacity resolution lives here
because both the inventory view and the API responses need the same answer:
a trip's own capacity wins, then the shuttle's, then the configured default.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_booking.core.config import get_settings
from shuttle_booking.core.errors import NotFoundError, InvalidArgumentError
from shuttle_booking.core.logging import get_logger
from shuttle_booking.models.shuttle import Shuttle
from shuttle_booking.models.trip import Trip

logger = get_logger(__name__)

DIRECTIONS = ("forward", "reverse")


def resolve_capacity(trip: Trip) -> int:
    if trip.seats_capacity:
        return trip.seats_capacity
    if trip.shuttle is not None and trip.shuttle.seats_capacity:
        return trip.shuttle.seats_capacity
    return get_settings().DEFAULT_SEAT_CAPACITY


async def get_trip(db: AsyncSession, trip_id: int) -> Trip:
    """Load a trip with its shuttle (and the shuttle's driver)."""
    result = await db.execute(select(Trip).where(Trip.id == trip_id))
    trip = result.scalar_one_or_none()
    if trip is None:
        raise NotFoundError(f"Trip {trip_id} not found", {"trip_id": trip_id})
    return trip


async def list_trips(
    db: AsyncSession,
    direction: Optional[str] = None,
    departure_time: Optional[str] = None,
) -> list[Trip]:
    """Trips ordered by departure label, optionally narrowed by direction and exact label."""
    query = select(Trip)
    if direction is not None:
        if direction not in DIRECTIONS:
            raise InvalidArgumentError(
                f"direction must be one of {', '.join(DIRECTIONS)}",
                {"direction": direction},
            )
        query = query.where(Trip.direction == direction)
    if departure_time is not None:
        label = departure_time.strip()
        if not label:
            raise InvalidArgumentError("departure_time must not be empty", {"departure_time": departure_time})
        query = query.where(Trip.departure_time == label)

    result = await db.execute(query.order_by(Trip.departure_time.asc(), Trip.id.asc()))
    trips = list(result.scalars().all())
    logger.debug("trips_listed", direction=direction, departure_time=departure_time, count=len(trips))
    return trips


async def get_shuttle(db: AsyncSession, shuttle_id: int) -> Optional[Shuttle]:
    result = await db.execute(select(Shuttle).where(Shuttle.id == shuttle_id))
    return result.scalar_one_or_none()


def serialize_trip(trip: Trip) -> dict:
    """Plain-dict view of a trip, shaped like TripResponse and safe to cache."""
    shuttle = trip.shuttle
    return {
        "id": trip.id,
        "shuttle_id": trip.shuttle_id,
        "departure_time": trip.departure_time,
        "route": trip.route,
        "direction": trip.direction,
        "seats_capacity": resolve_capacity(trip),
        "shuttle": {
            "id": shuttle.id,
            "name": shuttle.name,
            "base_route": shuttle.base_route,
            "seats_capacity": shuttle.seats_capacity,
            "driver_id": shuttle.driver_id,
        },
    }
