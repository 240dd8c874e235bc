"""
Driver-side passenger manifest.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_booking.core.errors import ForbiddenError, NotFoundError
from shuttle_booking.core.logging import get_logger
from shuttle_booking.models.reservation import Reservation, STATUS_ACTIVE
from shuttle_booking.models.shuttle import Shuttle
from shuttle_booking.models.trip import Trip
from shuttle_booking.models.user import User

logger = get_logger(__name__)


async def require_driver(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found", {"user_id": user_id})
    if not user.is_driver:
        raise ForbiddenError("Only drivers can view passenger lists", {"user_id": user_id})
    return user


async def list_trip_passengers(
    db: AsyncSession,
    driver_id: int,
    trip_id: Optional[int] = None,
    departure_time: Optional[str] = None,
    destination: Optional[str] = None,
) -> list[dict]:
    """
    Active passengers for one trip, or for every trip leaving at
    `departure_time`, ordered by seat. `destination` is a case-insensitive
    substring filter.
    """
    await require_driver(db, driver_id)

    query = (
        select(Reservation, User, Trip, Shuttle)
        .join(User, User.id == Reservation.user_id)
        .join(Trip, Trip.id == Reservation.trip_id)
        .join(Shuttle, Shuttle.id == Trip.shuttle_id)
        .where(Reservation.status == STATUS_ACTIVE)
    )
    if trip_id is not None:
        query = query.where(Reservation.trip_id == trip_id)
    elif departure_time:
        query = query.where(Trip.departure_time == departure_time)
    if destination:
        query = query.where(func.lower(Reservation.destination).contains(destination.lower(), autoescape=True))

    result = await db.execute(query.order_by(Reservation.seat_number.asc(), Trip.id.asc()))
    passengers = [
        {
            "reservation_id": reservation.id,
            "name": user.name,
            "email": user.email,
            "destination": reservation.destination,
            "seat_number": reservation.seat_number,
            "trip_id": trip.id,
            "departure_time": trip.departure_time,
            "shuttle_name": shuttle.name,
        }
        for reservation, user, trip, shuttle in result.all()
    ]

    logger.info(
        "manifest_listed",
        driver_id=driver_id,
        trip_id=trip_id,
        departure_time=departure_time,
        passengers=len(passengers),
    )
    return passengers
