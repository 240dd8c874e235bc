from shuttle_booking.models.user import User
from shuttle_booking.models.shuttle import Shuttle
from shuttle_booking.models.trip import Trip
from shuttle_booking.models.reservation import Reservation
from shuttle_booking.models.notification import Notification

__all__ = ["User", "Shuttle", "Trip", "Reservation", "Notification"]
