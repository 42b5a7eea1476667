"""
Redis caching service for seat listings.

CACHING STRATEGY
================

What we cache:
  - Seat listing responses (filtered by floor/section/availability)
  - Cache key pattern: "seats:list:floor={floor}&section={section}&available={available}"

Why:
  - The seat map is polled by every client looking for a free seat
  - Listings only change when a seat is edited or a booking changes occupancy

Invalidation strategy:
  - On seat create/update/delete: delete all seat list keys
  - On any booking transition that re-derives occupancy: delete all seat list keys
  - Short TTL as safety net, occupancy can also drift through reconciliation

Why NOT cache booking conflict checks:
  - Creation must see committed bookings; a stale read would double-book a seat
"""

import json
from typing import Optional

import redis.asyncio as redis
from attendease.core.config import get_settings
from attendease.core.logging import get_logger
from attendease.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


def _make_seat_list_key(floor: Optional[int], section: Optional[str], available: Optional[bool]) -> str:
    return f"seats:list:floor={floor}&section={section}&available={available}"


async def get_cached_seats(
    floor: Optional[int],
    section: Optional[str],
    available: Optional[bool],
) -> Optional[dict]:
    """Retrieve cached seat list response."""
    client = await get_redis()
    if not client:
        return None

    key = _make_seat_list_key(floor, section, available)
    try:
        data = await client.get(key)
        if data:
            record_cache_operation("get", hit=True)
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        record_cache_operation("get", hit=False)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_seats(
    floor: Optional[int],
    section: Optional[str],
    available: Optional[bool],
    data: dict,
) -> None:
    """Cache seat list response with TTL."""
    client = await get_redis()
    if not client:
        return

    key = _make_seat_list_key(floor, section, available)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_seat_cache() -> None:
    """
    Invalidate all cached seat listings.
    Uses SCAN to find and delete all keys matching the prefix.
    """
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match="seats:list:*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
