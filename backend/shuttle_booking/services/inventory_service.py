"""
Inventory view: seat occupancy derived from active reservations.

DERIVED STATE, NOT A COUNTER
============================

Earlier versions of the shuttle backend kept a `seatsAvailable` counter on
the shuttle and decremented/incremented it next to every booking and
cancellation. Under concurrent traffic the counter and the reservation rows
drifted apart: a crash between the two writes, or two cancellations racing,
left the counter wrong with nothing to reconcile it against.

Here occupancy is a pure function of the reservations table:

  taken_seats = { seat_number | reservation.trip_id = T AND status = 'active' }
  available   = max(0, capacity - |taken_seats|)

A cancellation needs no compensating write; flipping the status is enough.
Stored seat numbers outside [1, capacity] (capacity lowered after booking,
hand-edited rows) are ignored for counting and logged.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_booking.core.logging import get_logger
from shuttle_booking.models.reservation import Reservation, STATUS_ACTIVE
from shuttle_booking.services.catalog_service import get_trip, resolve_capacity

logger = get_logger(__name__)


@dataclass(frozen=True)
class Occupancy:
    trip_id: int
    taken_seats: frozenset[int]
    capacity: int

    @property
    def available(self) -> int:
        return max(0, self.capacity - len(self.taken_seats))

    def is_taken(self, seat_number: int) -> bool:
        return seat_number in self.taken_seats

    def lowest_free_seat(self) -> Optional[int]:
        for seat in range(1, self.capacity + 1):
            if seat not in self.taken_seats:
                return seat
        return None

    def to_dict(self) -> dict:
        return {
            "trip_id": self.trip_id,
            "taken_seats": sorted(self.taken_seats),
            "capacity": self.capacity,
            "available": self.available,
        }


def build_occupancy(trip_id: int, capacity: int, seat_numbers: Iterable[int]) -> Occupancy:
    taken = set()
    for seat in seat_numbers:
        if seat is None or not 1 <= seat <= capacity:
            logger.warning("seat_out_of_range", trip_id=trip_id, seat_number=seat, capacity=capacity)
            continue
        taken.add(seat)
    return Occupancy(trip_id=trip_id, taken_seats=frozenset(taken), capacity=capacity)


async def load_active_seats(db: AsyncSession, trip_id: int) -> list[int]:
    result = await db.execute(
        select(Reservation.seat_number).where(
            Reservation.trip_id == trip_id,
            Reservation.status == STATUS_ACTIVE,
        )
    )
    return list(result.scalars().all())


async def get_occupancy(db: AsyncSession, trip_id: int) -> Occupancy:
    """Current occupancy of a trip. Raises NotFoundError for unknown trips."""
    trip = await get_trip(db, trip_id)
    seats = await load_active_seats(db, trip.id)
    return build_occupancy(trip.id, resolve_capacity(trip), seats)
