"""
Cancellation engine.

There is no seat counter to give back: once the status flips to cancelled
the inventory view stops counting the seat and the partial unique index
stops guarding it, so the seat can be booked again immediately.

The status change is a conditional UPDATE (`... WHERE status = 'active'`),
so two cancellations racing for the same reservation cannot both succeed;
the loser gets AlreadyCancelled.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_booking.core.errors import AlreadyCancelledError, BookingError, ForbiddenError, NotFoundError
from shuttle_booking.core.logging import get_logger
from shuttle_booking.core.metrics import record_cancellation
from shuttle_booking.db.base import utcnow
from shuttle_booking.models.notification import KIND_CANCELLATION
from shuttle_booking.models.reservation import Reservation, STATUS_ACTIVE, STATUS_CANCELLED
from shuttle_booking.services.notification_service import notify_reservation_event
from shuttle_booking.services.push_transport import PushTransport

logger = get_logger(__name__)


async def _cancel(db: AsyncSession, user_id: int, reservation_id: int) -> Reservation:
    result = await db.execute(select(Reservation).where(Reservation.id == reservation_id))
    reservation = result.scalar_one_or_none()

    if reservation is None:
        raise NotFoundError("Reservation not found", {"reservation_id": reservation_id})

    if reservation.user_id != user_id:
        raise ForbiddenError(
            "Unauthorized to cancel this reservation",
            {"reservation_id": reservation_id},
        )

    if not reservation.is_active:
        raise AlreadyCancelledError(reservation_id)

    cancelled_at = utcnow()
    update_result = await db.execute(
        update(Reservation)
        .where(
            Reservation.id == reservation_id,
            Reservation.status == STATUS_ACTIVE,
        )
        .values(status=STATUS_CANCELLED, cancelled_at=cancelled_at, updated_at=cancelled_at)
        .execution_options(synchronize_session="evaluate")
    )
    if update_result.rowcount == 0:
        # Someone else cancelled it between our read and our write.
        raise AlreadyCancelledError(reservation_id)

    await db.commit()
    return reservation


async def cancel_reservation(
    db: AsyncSession,
    user_id: int,
    reservation_id: int,
    transport: Optional[PushTransport] = None,
) -> Reservation:
    """
    Cancel the caller's own active reservation.
    NotFound, Forbidden (not the owner) and AlreadyCancelled leave state untouched.
    """
    try:
        reservation = await _cancel(db, user_id, reservation_id)
    except BookingError as e:
        if db.in_transaction():
            await db.rollback()
        record_cancellation(e.kind.value)
        logger.info(
            "cancellation_rejected",
            user_id=user_id,
            reservation_id=reservation_id,
            reason=e.kind.value,
        )
        raise

    record_cancellation("success")
    logger.info(
        "reservation_cancelled",
        reservation_id=reservation.id,
        user_id=user_id,
        trip_id=reservation.trip_id,
        seat_released=reservation.seat_number,
    )

    await notify_reservation_event(db, KIND_CANCELLATION, reservation, reservation.trip, transport)
    return reservation
