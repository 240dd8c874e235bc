"""
Trip model: one scheduled departure of a shuttle.

Key design decisions:
- `departure_time` is a wall-clock label ("08:00"), not a timestamp. The
  time-conflict rule compares labels, so the same label on different days
  still counts as a clash.
- `seats_capacity` is nullable; when unset the shuttle's capacity applies.
- There is deliberately no available-seats column. Occupancy is derived from
  active reservations on every read.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from shuttle_booking.db.base import Base, TimestampMixin


class Trip(Base, TimestampMixin):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True)
    shuttle_id = Column(Integer, ForeignKey("shuttles.id"), nullable=False, index=True)
    departure_time = Column(String(16), nullable=False)
    route = Column(String(255), nullable=False, default="")
    direction = Column(String(10), nullable=False, default="forward")  # forward, reverse
    seats_capacity = Column(Integer, nullable=True)

    shuttle = relationship("Shuttle", back_populates="trips", lazy="selectin")
    reservations = relationship("Reservation", back_populates="trip", lazy="raise")

    __table_args__ = (
        CheckConstraint("direction IN ('forward', 'reverse')", name="check_trip_direction"),
        CheckConstraint("seats_capacity IS NULL OR seats_capacity > 0", name="check_trip_capacity_positive"),
        Index("ix_trips_departure_time", "departure_time"),
    )

    def __repr__(self) -> str:
        return f"<Trip(id={self.id}, shuttle={self.shuttle_id}, departure={self.departure_time})>"
