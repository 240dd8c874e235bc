"""
Pydantic schemas for notification endpoints.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class ReminderCreate(BaseModel):
    reservation_id: int
    hours_before_departure: float = Field(..., gt=0, le=168)


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    reservation_id: int
    trip_id: int
    shuttle_id: int
    kind: Literal["confirmation", "cancellation", "reminder"]
    title: str
    message: str
    scheduled_for: datetime
    is_sent: bool
    sent_at: Optional[datetime]
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class DispatchResponse(BaseModel):
    message: str
    count: int
