"""
Redis caching service for the capacity overview.

CACHING STRATEGY
================

What we cache:
  - The per-date capacity overview (JSON-serialized)
  - Cache key pattern: "capacity:overview:{YYYY-MM-DD}"

Why:
  - The overview is polled by the admin dashboard and booking forms
  - It fans out to every service's defaults, overrides and counters

Invalidation strategy:
  - On reserve / release / commit / expiry: delete that date's key
  - On default or override changes: delete every overview key (SCAN prefix)
  - TTL (OVERVIEW_CACHE_TTL) bounds staleness if an invalidation is lost

What we never cache:
  - Per-key availability and anything the reservation path reads. Capacity
    checks always go to the database; a stale count would mean overbooking.

Redis is optional. When disabled or unreachable every call is a no-op and the
overview is computed from the database on each request.
"""

import json
from datetime import date
from typing import Optional

import redis.asyncio as redis
from kennel.core.config import get_settings
from kennel.core.logging import get_logger
from kennel.core.metrics import record_cache_operation

logger = get_logger(__name__)

OVERVIEW_KEY_PREFIX = "capacity:overview:"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client
    settings = get_settings()

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
        await _redis_client.aclose()
        _redis_client = None


def _overview_key(day: date) -> str:
    return f"{OVERVIEW_KEY_PREFIX}{day.isoformat()}"


async def get_cached_overview(day: date) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = _overview_key(day)
    try:
        data = await client.get(key)
        if data:
            record_cache_operation("get", "hit")
            return json.loads(data)
        record_cache_operation("get", "miss")
    except Exception as e:
        record_cache_operation("get", "error")
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_overview(day: date, data: dict) -> None:
    client = await get_redis()
    if not client:
        return

    key = _overview_key(day)
    ttl = get_settings().OVERVIEW_CACHE_TTL
    try:
        await client.setex(key, ttl, json.dumps(data, default=str))
        record_cache_operation("set", "ok")
    except Exception as e:
        record_cache_operation("set", "error")
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_overview_cache(day: Optional[date] = None) -> None:
    """Drop one date's overview, or every cached overview when ``day`` is None."""
    client = await get_redis()
    if not client:
        return

    try:
        if day is not None:
            await client.delete(_overview_key(day))
            deleted = 1
        else:
            deleted = 0
            async for key in client.scan_iter(match=f"{OVERVIEW_KEY_PREFIX}*", count=100):
                await client.delete(key)
                deleted += 1
        record_cache_operation("invalidate", "ok")
        logger.debug("overview_cache_invalidated", day=str(day) if day else "all", keys_deleted=deleted)
    except Exception as e:
        record_cache_operation("invalidate", "error")
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Redis status for the health endpoint."""
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
