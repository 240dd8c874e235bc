"""
Domain error taxonomy for the reservation engine.

Services raise these; the API layer renders them as
``{"error_kind": ..., "message": ..., "details": {...}}`` with the
status code carried by the exception class.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_ARGUMENT = "invalid_argument"
    SEAT_TAKEN = "seat_taken"
    NO_SEATS_AVAILABLE = "no_seats_available"
    DUPLICATE_BOOKING = "duplicate_booking"
    TIME_CONFLICT = "time_conflict"
    FORBIDDEN = "forbidden"
    ALREADY_CANCELLED = "already_cancelled"
    INTERNAL = "internal"


class BookingError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(BookingError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class InvalidArgumentError(BookingError):
    kind = ErrorKind.INVALID_ARGUMENT
    status_code = 400


class SeatTakenError(BookingError):
    kind = ErrorKind.SEAT_TAKEN
    status_code = 409

    def __init__(self, trip_id: int, seat_number: int):
        super().__init__(
            f"Seat {seat_number} is already taken on this trip",
            {"trip_id": trip_id, "seat_number": seat_number},
        )


class NoSeatsAvailableError(BookingError):
    kind = ErrorKind.NO_SEATS_AVAILABLE
    status_code = 409

    def __init__(self, trip_id: int, capacity: int):
        super().__init__(
            "No available seats on this trip",
            {"trip_id": trip_id, "capacity": capacity},
        )


class DuplicateBookingError(BookingError):
    kind = ErrorKind.DUPLICATE_BOOKING
    status_code = 409

    def __init__(self, trip_id: int, reservation_id: Optional[int] = None):
        details: dict[str, Any] = {"trip_id": trip_id}
        if reservation_id is not None:
            details["reservation_id"] = reservation_id
        super().__init__("You already have an active reservation on this trip", details)


class TimeConflictError(BookingError):
    """The user already rides another trip that leaves at the same time."""

    kind = ErrorKind.TIME_CONFLICT
    status_code = 409

    def __init__(self, conflicting_trip_id: int, departure_time: str, route: str, shuttle_name: str):
        super().__init__(
            f"You already have a reservation on {shuttle_name} at {departure_time}",
            {
                "conflicting_trip_id": conflicting_trip_id,
                "departure_time": departure_time,
                "route": route,
                "shuttle_name": shuttle_name,
            },
        )


class ForbiddenError(BookingError):
    kind = ErrorKind.FORBIDDEN
    status_code = 403


class AlreadyCancelledError(BookingError):
    kind = ErrorKind.ALREADY_CANCELLED
    status_code = 400

    def __init__(self, reservation_id: int):
        super().__init__(
            "Reservation is already cancelled",
            {"reservation_id": reservation_id},
        )


class InternalError(BookingError):
    kind = ErrorKind.INTERNAL
    status_code = 500

    def __init__(self, message: str = "Something went wrong. Please try again."):
        super().__init__(message, {"retryable": True})
