"""
Reservation model: one passenger holding one seat on one trip.

Key design decisions:
- Two partial unique indexes restricted to active rows are the storage-level
  guard for concurrent bookings: one on (trip_id, seat_number) and one on
  (user_id, trip_id). Cancelled rows keep their seat number for the audit
  trail without blocking the seat.
- Rows are never deleted; cancellation flips `status` and sets `cancelled_at`.
- `shuttle_id` is denormalized from the trip for driver-side queries.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint, text
from sqlalchemy.orm import relationship

from shuttle_booking.db.base import Base, TimestampMixin

STATUS_ACTIVE = "active"
STATUS_CANCELLED = "cancelled"

ACTIVE_SEAT_INDEX = "uq_reservations_active_trip_seat"
ACTIVE_USER_TRIP_INDEX = "uq_reservations_active_user_trip"

_active_only = text("status = 'active'")


class Reservation(Base, TimestampMixin):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    shuttle_id = Column(Integer, ForeignKey("shuttles.id"), nullable=False, index=True)
    seat_number = Column(Integer, nullable=False)
    destination = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=STATUS_ACTIVE)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="reservations", lazy="raise")
    trip = relationship("Trip", back_populates="reservations", lazy="selectin")

    __table_args__ = (
        Index(
            ACTIVE_SEAT_INDEX,
            "trip_id",
            "seat_number",
            unique=True,
            postgresql_where=_active_only,
            sqlite_where=_active_only,
        ),
        Index(
            ACTIVE_USER_TRIP_INDEX,
            "user_id",
            "trip_id",
            unique=True,
            postgresql_where=_active_only,
            sqlite_where=_active_only,
        ),
        Index("ix_reservations_user_status", "user_id", "status"),
        CheckConstraint("seat_number > 0", name="check_reservation_seat_positive"),
        CheckConstraint("status IN ('active', 'cancelled')", name="check_reservation_status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, user={self.user_id}, trip={self.trip_id}, "
            f"seat={self.seat_number}, status={self.status})>"
        )
