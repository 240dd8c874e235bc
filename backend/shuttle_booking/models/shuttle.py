"""
Shuttle model: a vehicle with a default seat capacity and an optional
assigned driver who is notified about bookings on its trips.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from shuttle_booking.db.base import Base, TimestampMixin


class Shuttle(Base, TimestampMixin):
    __tablename__ = "shuttles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    base_route = Column(String(255), nullable=False, default="")
    seats_capacity = Column(Integer, nullable=False, default=20)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    driver = relationship("User", lazy="selectin")
    trips = relationship("Trip", back_populates="shuttle", lazy="raise")

    __table_args__ = (
        CheckConstraint("seats_capacity > 0", name="check_shuttle_capacity_positive"),
    )

    def __repr__(self) -> str:
        return f"<Shuttle(id={self.id}, name={self.name}, driver={self.driver_id})>"
