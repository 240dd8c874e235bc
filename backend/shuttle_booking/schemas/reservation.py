"""
Pydantic schemas for reservation requests and responses.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class ReservationCreate(BaseModel):
    trip_id: int
    destination: str = Field(..., max_length=255)
    # Range is checked by the booking engine against the trip's capacity.
    seat_number: Optional[int] = None


class ReservationResponse(BaseModel):
    id: int
    user_id: int
    trip_id: int
    shuttle_id: int
    seat_number: int
    destination: str
    status: Literal["active", "cancelled"]
    created_at: datetime
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PassengerManifestEntry(BaseModel):
    reservation_id: int
    name: str
    email: str
    destination: str
    seat_number: int
    trip_id: int
    departure_time: str
    shuttle_name: str
