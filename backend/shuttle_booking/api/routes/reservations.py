"""
Reservation endpoints: book, cancel, list.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_booking.core.security import get_current_user_id
from shuttle_booking.db.session import get_db
from shuttle_booking.schemas.error import ErrorResponse
from shuttle_booking.schemas.reservation import ReservationCreate, ReservationResponse
from shuttle_booking.services.booking_service import book_seat, list_user_reservations
from shuttle_booking.services.cancellation_service import cancel_reservation

router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.post(
    "/",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def create_reservation(
    reservation_data: ReservationCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Book a seat on a trip.

    Omit `seat_number` to get the lowest free seat. Rejections carry an
    `error_kind` (seat_taken, no_seats_available, duplicate_booking,
    time_conflict, ...) and details for a user-facing message.
    """
    return await book_seat(
        db,
        user_id,
        reservation_data.trip_id,
        reservation_data.destination,
        reservation_data.seat_number,
    )


@router.patch(
    "/{reservation_id}/cancel",
    response_model=ReservationResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def cancel_reservation_endpoint(
    reservation_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Cancel one of your reservations; the seat is released immediately."""
    return await cancel_reservation(db, user_id, reservation_id)


@router.get("/my", response_model=list[ReservationResponse])
async def list_my_reservations(
    include_cancelled: bool = Query(False),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await list_user_reservations(db, user_id, include_cancelled)
