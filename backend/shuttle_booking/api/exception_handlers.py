"""
Render domain errors as the shared error envelope.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from shuttle_booking.core.errors import BookingError, InternalError
from shuttle_booking.core.logging import get_logger

logger = get_logger(__name__)


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("domain_error", error_kind=exc.kind.value, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("storage_error", error=str(exc))
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", error=str(exc))
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


EXCEPTION_HANDLERS = {
    BookingError: booking_error_handler,
    SQLAlchemyError: storage_error_handler,
    Exception: unhandled_exception_handler,
}


def register_exception_handlers(app: FastAPI) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
