"""
Driver endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_booking.core.security import get_current_user_id
from shuttle_booking.db.session import get_db
from shuttle_booking.schemas.error import ErrorResponse
from shuttle_booking.schemas.reservation import PassengerManifestEntry
from shuttle_booking.services.driver_service import list_trip_passengers

router = APIRouter(prefix="/driver", tags=["Driver"])


@router.get(
    "/reservations",
    response_model=list[PassengerManifestEntry],
    responses={403: {"model": ErrorResponse}},
)
async def list_passengers(
    trip_id: Optional[int] = Query(None),
    departure_time: Optional[str] = Query(None, max_length=16),
    destination: Optional[str] = Query(None, max_length=255),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Active passengers ordered by seat, filtered by trip or departure time."""
    return await list_trip_passengers(db, user_id, trip_id, departure_time, destination)
