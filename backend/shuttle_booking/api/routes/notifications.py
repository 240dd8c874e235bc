"""
Notification endpoints: reminders, inbox, read flag and the reminder sweep.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_booking.core.security import get_current_user_id
from shuttle_booking.db.session import get_db
from shuttle_booking.schemas.error import ErrorResponse
from shuttle_booking.schemas.notification import DispatchResponse, NotificationResponse, ReminderCreate
from shuttle_booking.services.notification_service import (
    dispatch_due_reminders,
    list_notifications,
    mark_read,
    schedule_reminder,
)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.post(
    "/reminder",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def schedule_reminder_endpoint(
    reminder: ReminderCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await schedule_reminder(db, user_id, reminder.reservation_id, reminder.hours_before_departure)


@router.get("/", response_model=list[NotificationResponse])
async def list_notifications_endpoint(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await list_notifications(db, user_id)


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def mark_read_endpoint(
    notification_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await mark_read(db, user_id, notification_id)


@router.post("/dispatch-due", response_model=DispatchResponse)
async def dispatch_due_endpoint(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Push every due reminder. Meant to be called by a scheduler."""
    count = await dispatch_due_reminders(db)
    return DispatchResponse(message=f"{count} reminders sent successfully", count=count)
