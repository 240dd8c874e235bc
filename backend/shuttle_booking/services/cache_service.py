"""
Redis caching for the trip catalog.

What we cache:
  - Trip listing responses (JSON), keyed by the listing filters:
    "trips:list:direction={direction}:departure={departure_time}"

Why only the catalog:
  - Trips are seeded externally and immutable from this service's point of
    view, so a TTL is the only invalidation they need.
  - Occupancy is NEVER cached. It is derived from active reservations on
    every read; a stale cached copy would reintroduce exactly the drift the
    derived inventory exists to prevent.

Failure policy:
  Redis is advisory. Any connection or command error is logged and the
  caller falls through to the database. After a failed connect we wait
  RECONNECT_BACKOFF_SECONDS before trying again, so a dead Redis costs one
  log line per window instead of a connect timeout on every request.
"""

import json
import time
from typing import Any, Optional

import redis.asyncio as redis

from shuttle_booking.core.config import get_settings
from shuttle_booking.core.logging import get_logger
from shuttle_booking.core.metrics import record_cache_lookup

logger = get_logger(__name__)
settings = get_settings()

TRIP_LIST_PREFIX = "trips:list:"
RECONNECT_BACKOFF_SECONDS = 30.0

_redis_client: Optional[redis.Redis] = None
_last_connect_failure: Optional[float] = None


async def get_redis() -> Optional[redis.Redis]:
    """Shared Redis client, or None when caching is disabled or Redis is unreachable."""
    global _redis_client, _last_connect_failure

    if not settings.REDIS_ENABLED:
        return None
    if _redis_client is not None:
        return _redis_client
    if _last_connect_failure is not None and time.monotonic() - _last_connect_failure < RECONNECT_BACKOFF_SECONDS:
        return None

    client = redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    try:
        await client.ping()
    except Exception as e:
        _last_connect_failure = time.monotonic()
        logger.error("redis_connection_failed", error=str(e), retry_in=RECONNECT_BACKOFF_SECONDS)
        await client.aclose()
        return None

    _redis_client = client
    _last_connect_failure = None
    logger.info("redis_connected", url=settings.REDIS_URL)
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


async def _get_json(key: str) -> Optional[Any]:
    client = await get_redis()
    if client is None:
        return None
    try:
        raw = await client.get(key)
    except Exception as e:
        record_cache_lookup("error")
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_lookup("hit" if raw else "miss")
    return json.loads(raw) if raw else None


async def _set_json(key: str, value: Any, ttl: int) -> None:
    client = await get_redis()
    if client is None:
        return
    try:
        await client.setex(key, ttl, json.dumps(value, default=str))
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


def make_trip_list_key(direction: Optional[str], departure_time: Optional[str] = None) -> str:
    label = departure_time.strip() if departure_time is not None else "all"
    return f"{TRIP_LIST_PREFIX}direction={direction or 'all'}:departure={label}"


async def get_cached_trips(direction: Optional[str], departure_time: Optional[str] = None) -> Optional[dict]:
    return await _get_json(make_trip_list_key(direction, departure_time))


async def set_cached_trips(direction: Optional[str], data: dict, departure_time: Optional[str] = None) -> None:
    await _set_json(make_trip_list_key(direction, departure_time), data, settings.REDIS_CACHE_TTL)


async def get_cache_stats() -> dict:
    client = await get_redis()
    if client is None:
        return {"status": "disabled" if not settings.REDIS_ENABLED else "unavailable"}

    try:
        info = await client.info("stats")
    except Exception as e:
        return {"status": "error", "error": str(e)}

    hits = info.get("keyspace_hits", 0)
    misses = info.get("keyspace_misses", 0)
    return {
        "status": "connected",
        "hits": hits,
        "misses": misses,
        "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
    }
