"""
Notification dispatcher.

Confirmation and cancellation notices are written after the reservation has
been committed, in a session of their own. Whatever goes wrong while building,
storing or pushing them is logged and counted, never raised: a seat that was
committed stays committed.

Reminders are scheduled explicitly by the passenger and delivered by a sweep
(`dispatch_due_reminders`) that an external scheduler calls periodically.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_booking.core.config import get_settings
from shuttle_booking.core.errors import (
    AlreadyCancelledError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
)
from shuttle_booking.core.logging import get_logger
from shuttle_booking.core.metrics import record_notification, reminders_dispatched
from shuttle_booking.db.base import utcnow
from shuttle_booking.models.notification import (
    Notification,
    KIND_CANCELLATION,
    KIND_CONFIRMATION,
    KIND_REMINDER,
)
from shuttle_booking.models.reservation import Reservation, STATUS_ACTIVE
from shuttle_booking.models.trip import Trip
from shuttle_booking.models.user import User
from shuttle_booking.services.catalog_service import get_shuttle
from shuttle_booking.services.push_transport import PushTransport, get_push_transport

logger = get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compose_message(kind: str, reservation: Reservation, trip: Trip, to_driver: bool) -> tuple[str, str]:
    seat = reservation.seat_number
    label = trip.departure_time
    destination = reservation.destination

    if kind == KIND_CONFIRMATION:
        if to_driver:
            return "New passenger", f"Seat {seat} on the {label} trip was booked (destination: {destination})."
        return "Reservation confirmed", f"Seat {seat} on the {label} trip to {destination} is confirmed."
    if kind == KIND_CANCELLATION:
        if to_driver:
            return "Passenger cancelled", f"Seat {seat} on the {label} trip was released (destination: {destination})."
        return "Reservation cancelled", f"Your seat {seat} on the {label} trip to {destination} has been cancelled."
    raise ValueError(f"unsupported notification kind: {kind}")


def build_notification(
    kind: str,
    recipient_user_id: int,
    reservation: Reservation,
    trip: Trip,
    now: Optional[datetime] = None,
) -> Notification:
    to_driver = recipient_user_id != reservation.user_id
    title, message = compose_message(kind, reservation, trip, to_driver)
    return Notification(
        user_id=recipient_user_id,
        reservation_id=reservation.id,
        trip_id=trip.id,
        shuttle_id=trip.shuttle_id,
        kind=kind,
        title=title,
        message=message,
        scheduled_for=now or utcnow(),
    )


async def _device_tokens(db: AsyncSession, user_ids: Iterable[int]) -> dict[int, list[str]]:
    ids = set(user_ids)
    if not ids:
        return {}
    result = await db.execute(select(User.id, User.device_token).where(User.id.in_(ids)))
    return {user_id: [token] if token else [] for user_id, token in result.all()}


async def _push(transport: PushTransport, notification: Notification, tokens: list[str]) -> bool:
    """Hand a notification to the transport. Returns whether the transport delivered it."""
    delivered = await transport.send(
        tokens,
        notification.title,
        notification.message,
        {
            "notification_id": notification.id,
            "reservation_id": notification.reservation_id,
            "trip_id": notification.trip_id,
            "shuttle_id": notification.shuttle_id,
            "kind": notification.kind,
        },
    )
    if not delivered:
        logger.info("push_not_delivered", notification_id=notification.id, user_id=notification.user_id)
    return delivered


async def notify(
    db: AsyncSession,
    kind: str,
    recipient_user_id: int,
    reservation: Reservation,
    trip: Trip,
    transport: Optional[PushTransport] = None,
) -> Optional[Notification]:
    """
    Store a notification for one recipient and hand it to the push transport.
    Returns None when the record could not be stored. Never raises.
    """
    transport = transport or get_push_transport()

    async with AsyncSession(db.bind, expire_on_commit=False) as session:
        try:
            notification = build_notification(kind, recipient_user_id, reservation, trip)
            session.add(notification)
            await session.commit()
        except Exception as e:
            await session.rollback()
            record_notification(kind, "failed")
            logger.error(
                "notification_failed",
                stage="store",
                kind=kind,
                user_id=recipient_user_id,
                reservation_id=reservation.id,
                error=str(e),
            )
            return None

        notification_id = notification.id
        try:
            tokens = (await _device_tokens(session, [recipient_user_id])).get(recipient_user_id, [])
            await _push(transport, notification, tokens)
        except Exception as e:
            # Stored but unsent; nothing pending in the session.
            record_notification(kind, "stored")
            logger.error(
                "notification_failed",
                stage="push",
                kind=kind,
                notification_id=notification_id,
                user_id=recipient_user_id,
                error=str(e),
            )
            return notification

        # Sent means handed over; _push logs a transport that declined it.
        try:
            notification.is_sent = True
            notification.sent_at = utcnow()
            await session.commit()
        except Exception as e:
            await session.rollback()
            record_notification(kind, "stored")
            logger.error(
                "notification_failed",
                stage="mark_sent",
                kind=kind,
                notification_id=notification_id,
                error=str(e),
            )
            return None

    record_notification(kind, "sent")
    logger.info("notification_sent", kind=kind, notification_id=notification_id, user_id=recipient_user_id)
    return notification


async def _current_driver_id(db: AsyncSession, shuttle_id: int) -> Optional[int]:
    # Driver assignments change independently of trips, so look it up fresh.
    async with AsyncSession(db.bind) as session:
        try:
            shuttle = await get_shuttle(session, shuttle_id)
        except Exception as e:
            logger.error("driver_lookup_failed", shuttle_id=shuttle_id, error=str(e))
            return None
    return shuttle.driver_id if shuttle is not None else None


async def notify_reservation_event(
    db: AsyncSession,
    kind: str,
    reservation: Reservation,
    trip: Trip,
    transport: Optional[PushTransport] = None,
) -> list[Notification]:
    """Notify the passenger and, when the shuttle has one, its driver."""
    recipients = [reservation.user_id]
    driver_id = await _current_driver_id(db, trip.shuttle_id)
    if driver_id is not None and driver_id != reservation.user_id:
        recipients.append(driver_id)

    sent = []
    for recipient in recipients:
        notification = await notify(db, kind, recipient, reservation, trip, transport)
        if notification is not None:
            sent.append(notification)
    return sent


def next_departure(label: str, reference: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    First instant at or after `reference` whose wall-clock time in the
    configured zone matches the departure label. Returned in UTC.
    """
    try:
        clock = datetime.strptime(label.strip(), "%H:%M").time()
    except ValueError:
        raise InvalidArgumentError(
            f"Departure time '{label}' is not a HH:MM clock time",
            {"departure_time": label},
        )

    zone = ZoneInfo(tz_name or get_settings().TIMEZONE)
    local_reference = _as_utc(reference).astimezone(zone)
    candidate = local_reference.replace(hour=clock.hour, minute=clock.minute, second=0, microsecond=0)
    if candidate < local_reference:
        candidate += timedelta(days=1)
    return candidate.astimezone(timezone.utc)


async def schedule_reminder(
    db: AsyncSession,
    user_id: int,
    reservation_id: int,
    hours_before_departure: float,
) -> Notification:
    if hours_before_departure is None or hours_before_departure <= 0:
        raise InvalidArgumentError(
            "hours_before_departure must be positive",
            {"hours_before_departure": hours_before_departure},
        )

    result = await db.execute(select(Reservation).where(Reservation.id == reservation_id))
    reservation = result.scalar_one_or_none()
    if reservation is None:
        raise NotFoundError("Reservation not found", {"reservation_id": reservation_id})
    if reservation.user_id != user_id:
        raise ForbiddenError(
            "Unauthorized to schedule a reminder for this reservation",
            {"reservation_id": reservation_id},
        )
    if not reservation.is_active:
        raise AlreadyCancelledError(reservation_id)

    trip = reservation.trip
    departure = next_departure(trip.departure_time, reservation.created_at)
    scheduled_for = departure - timedelta(hours=hours_before_departure)

    notification = Notification(
        user_id=user_id,
        reservation_id=reservation.id,
        trip_id=trip.id,
        shuttle_id=trip.shuttle_id,
        kind=KIND_REMINDER,
        title="Shuttle reminder",
        message=f"Your shuttle departs in {hours_before_departure:g} hour(s)",
        scheduled_for=scheduled_for,
    )
    db.add(notification)
    await db.commit()
    await db.refresh(notification)

    logger.info(
        "reminder_scheduled",
        notification_id=notification.id,
        reservation_id=reservation.id,
        scheduled_for=scheduled_for.isoformat(),
    )
    return notification


async def dispatch_due_reminders(
    db: AsyncSession,
    now: Optional[datetime] = None,
    transport: Optional[PushTransport] = None,
) -> int:
    """
    Push every unsent reminder that is due and mark it sent.

    A reminder whose push raises stays unsent and is retried by the next
    sweep. Reminders for reservations cancelled in the meantime are closed
    without being pushed. Returns the number of reminders pushed.
    """
    now = now or utcnow()
    transport = transport or get_push_transport()

    result = await db.execute(
        select(Notification, Reservation.status)
        .join(Reservation, Reservation.id == Notification.reservation_id)
        .where(
            Notification.kind == KIND_REMINDER,
            Notification.is_sent.is_(False),
            Notification.scheduled_for <= now,
        )
        .order_by(Notification.scheduled_for.asc(), Notification.id.asc())
    )
    due = result.all()
    tokens = await _device_tokens(db, [notification.user_id for notification, _ in due])

    pushed = 0
    for notification, reservation_status in due:
        if reservation_status != STATUS_ACTIVE:
            notification.is_sent = True
            notification.sent_at = now
            logger.info("reminder_dropped_cancelled", notification_id=notification.id)
            continue
        try:
            await _push(transport, notification, tokens.get(notification.user_id, []))
        except Exception as e:
            record_notification(KIND_REMINDER, "failed")
            logger.error("reminder_push_failed", notification_id=notification.id, error=str(e))
            continue
        notification.is_sent = True
        notification.sent_at = now
        pushed += 1
        record_notification(KIND_REMINDER, "sent")

    await db.commit()
    reminders_dispatched.inc(pushed)
    logger.info("reminders_dispatched", due=len(due), pushed=pushed)
    return pushed


async def list_notifications(db: AsyncSession, user_id: int) -> list[Notification]:
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    )
    return list(result.scalars().all())


async def mark_read(db: AsyncSession, user_id: int, notification_id: int) -> Notification:
    result = await db.execute(select(Notification).where(Notification.id == notification_id))
    notification = result.scalar_one_or_none()
    if notification is None:
        raise NotFoundError("Notification not found", {"notification_id": notification_id})
    if notification.user_id != user_id:
        raise ForbiddenError(
            "Unauthorized to update this notification",
            {"notification_id": notification_id},
        )

    notification.is_read = True
    await db.commit()
    await db.refresh(notification)
    return notification
