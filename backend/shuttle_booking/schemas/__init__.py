from shuttle_booking.schemas.reservation import ReservationCreate, ReservationResponse, PassengerManifestEntry
from shuttle_booking.schemas.trip import ShuttleResponse, TripResponse, TripListResponse, OccupancyResponse
from shuttle_booking.schemas.notification import ReminderCreate, NotificationResponse, DispatchResponse
from shuttle_booking.schemas.error import ErrorResponse

__all__ = [
    "ReservationCreate", "ReservationResponse", "PassengerManifestEntry",
    "ShuttleResponse", "TripResponse", "TripListResponse", "OccupancyResponse",
    "ReminderCreate", "NotificationResponse", "DispatchResponse",
    "ErrorResponse",
]
