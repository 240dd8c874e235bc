"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from shuttle_booking.api.routes import driver, notifications, reservations, trips

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(trips.router)
api_router.include_router(reservations.router)
api_router.include_router(notifications.router)
api_router.include_router(driver.router)
