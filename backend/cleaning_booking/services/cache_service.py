"""
Redis caching service for catalog listings.

CACHING STRATEGY
================

What we cache:
  - The active service catalog listing (JSON-serialized)
  - Cache key pattern: "catalog:list:active={active_only}"

Invalidation strategy:
  - On catalog writes: delete all "catalog:list:*" keys via SCAN
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

Why NOT cache single services:
  - Booking creation must price against the current catalog row; a stale
    cached price would be frozen into the booking snapshot
  - Redis is advisory only: every function fails open and the caller falls
    back to the database
"""

import json
from typing import Optional

import redis.asyncio as redis

from cleaning_booking.core.config import get_settings
from cleaning_booking.core.logging import get_logger
from cleaning_booking.core.metrics import record_cache_operation
from cleaning_booking.infrastructure.redis_client import get_redis

logger = get_logger(__name__)

CATALOG_KEY_PREFIX = "catalog:list:"


def _make_catalog_key(active_only: bool) -> str:
    return f"{CATALOG_KEY_PREFIX}active={active_only}"


async def get_cached_catalog(active_only: bool) -> Optional[list]:
    client = await get_redis()
    if not client:
        return None

    key = _make_catalog_key(active_only)
    try:
        data = await client.get(key)
    except redis.RedisError as e:
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data:
        logger.debug("cache_hit", key=key)
        return json.loads(data)
    logger.debug("cache_miss", key=key)
    return None


async def set_cached_catalog(active_only: bool, data: list) -> None:
    client = await get_redis()
    if not client:
        return

    settings = get_settings()
    key = _make_catalog_key(active_only)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except redis.RedisError as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_catalog_cache() -> None:
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{CATALOG_KEY_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except redis.RedisError as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for the health endpoint."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
    except redis.RedisError as e:
        return {"status": "error", "error": str(e)}

    hits = info.get("keyspace_hits", 0)
    misses = info.get("keyspace_misses", 0)
    return {
        "status": "connected",
        "hits": hits,
        "misses": misses,
        "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
    }
