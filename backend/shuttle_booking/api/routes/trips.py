"""
Trip catalog endpoints. Listings are cached; occupancy never is.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_booking.core.logging import get_logger
from shuttle_booking.db.session import get_db
from shuttle_booking.schemas.error import ErrorResponse
from shuttle_booking.schemas.trip import OccupancyResponse, TripListResponse, TripResponse
from shuttle_booking.services.cache_service import get_cached_trips, set_cached_trips
from shuttle_booking.services.catalog_service import get_trip, list_trips, serialize_trip
from shuttle_booking.services.inventory_service import get_occupancy

logger = get_logger(__name__)
router = APIRouter(prefix="/trips", tags=["Trips"])


@router.get("/", response_model=TripListResponse)
async def list_trips_endpoint(
    direction: Optional[Literal["forward", "reverse"]] = Query(None),
    departure_time: Optional[str] = Query(
        None, min_length=1, max_length=16, description="Exact departure label, e.g. 08:00"
    ),
    db: AsyncSession = Depends(get_db),
):
    cached = await get_cached_trips(direction, departure_time)
    if cached:
        logger.info("trips_list_cache_hit", direction=direction, departure_time=departure_time)
        cached["cached"] = True
        return TripListResponse(**cached)

    trips = await list_trips(db, direction, departure_time)
    response_data = {
        "trips": [serialize_trip(trip) for trip in trips],
        "total": len(trips),
        "cached": False,
    }
    await set_cached_trips(direction, response_data, departure_time)
    return TripListResponse(**response_data)


@router.get("/{trip_id}", response_model=TripResponse, responses={404: {"model": ErrorResponse}})
async def get_trip_endpoint(trip_id: int, db: AsyncSession = Depends(get_db)):
    trip = await get_trip(db, trip_id)
    return serialize_trip(trip)


@router.get("/{trip_id}/occupancy", response_model=OccupancyResponse, responses={404: {"model": ErrorResponse}})
async def get_occupancy_endpoint(trip_id: int, db: AsyncSession = Depends(get_db)):
    """Taken seats and remaining capacity, computed from active reservations."""
    occupancy = await get_occupancy(db, trip_id)
    return occupancy.to_dict()
