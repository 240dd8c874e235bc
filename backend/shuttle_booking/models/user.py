"""
User model. Rows are provisioned by the identity service; this API reads
them for ownership, driver lookup and push device tokens.
"""

from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint
from sqlalchemy.orm import relationship

from shuttle_booking.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, default="passenger")  # passenger, driver
    device_token = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    reservations = relationship("Reservation", back_populates="user", lazy="raise")

    __table_args__ = (
        CheckConstraint("role IN ('passenger', 'driver')", name="check_user_role"),
    )

    @property
    def is_driver(self) -> bool:
        return self.role == "driver"

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
