"""
Shuttle Booking API - Main Application Entry Point

Seat reservations for scheduled shuttle trips:
- Seat exclusivity and one-booking-per-trip enforced by partial unique indexes
- Occupancy derived from active reservations, never from a stored counter
- Best-effort confirmation/cancellation notifications to passengers and drivers
- Structured logging with request correlation, Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_booking.core.config import get_settings
from shuttle_booking.core.logging import setup_logging, get_logger
from shuttle_booking.core.metrics import metrics_endpoint
from shuttle_booking.db.session import engine, get_db
from shuttle_booking.api.exception_handlers import register_exception_handlers
from shuttle_booking.api.router import api_router
from shuttle_booking.api.middleware import RequestLoggingMiddleware
from shuttle_booking.services.cache_service import get_redis, close_redis, get_cache_stats

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Trip listings served without cache")

    yield

    await close_redis()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Seat reservations for scheduled shuttle trips",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """Database reachability decides health; the cache is informational."""
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        await db.rollback()
        get_logger(__name__).error("health_database_error", error=str(e))
        database = "unreachable"

    cache_stats = await get_cache_stats()
    return JSONResponse(
        status_code=200 if database == "ok" else 503,
        content={
            "status": "healthy" if database == "ok" else "degraded",
            "database": database,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "cache": cache_stats,
        },
    )


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
