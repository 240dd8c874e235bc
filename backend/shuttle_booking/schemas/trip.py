"""
Pydantic schemas for catalog and occupancy responses.
"""

from typing import Literal, Optional
from pydantic import BaseModel


class ShuttleResponse(BaseModel):
    id: int
    name: str
    base_route: str
    seats_capacity: int
    driver_id: Optional[int]

    model_config = {"from_attributes": True}


class TripResponse(BaseModel):
    id: int
    shuttle_id: int
    departure_time: str
    route: str
    direction: Literal["forward", "reverse"]
    seats_capacity: int
    shuttle: ShuttleResponse


class TripListResponse(BaseModel):
    trips: list[TripResponse]
    total: int
    cached: bool = False


class OccupancyResponse(BaseModel):
    trip_id: int
    taken_seats: list[int]
    capacity: int
    available: int
