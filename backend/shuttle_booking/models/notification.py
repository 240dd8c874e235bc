"""
Notification model: a confirmation, cancellation or reminder addressed to a
passenger or driver. Write-once apart from the delivery and read flags.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, CheckConstraint

from shuttle_booking.db.base import Base, utcnow

KIND_CONFIRMATION = "confirmation"
KIND_CANCELLATION = "cancellation"
KIND_REMINDER = "reminder"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False)
    shuttle_id = Column(Integer, ForeignKey("shuttles.id"), nullable=False)
    kind = Column(String(20), nullable=False, default=KIND_REMINDER)
    title = Column(String(255), nullable=False)
    message = Column(String(1000), nullable=False)
    scheduled_for = Column(DateTime(timezone=True), nullable=False)
    is_sent = Column(Boolean, nullable=False, default=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "kind IN ('confirmation', 'cancellation', 'reminder')",
            name="check_notification_kind",
        ),
        # Reminder sweep: WHERE is_sent = false AND scheduled_for <= now
        Index("ix_notifications_due", "is_sent", "scheduled_for"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user={self.user_id}, kind={self.kind}, sent={self.is_sent})>"
