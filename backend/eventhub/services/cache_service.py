"""
Redis caching service for event listings.

CACHING STRATEGY
================

What we cache:
  - Public event listing responses (paginated, projected, JSON-serialized)
  - Cache key pattern: "events:list:{normalised query string}"
    The query parameters are sorted before encoding so `?page=2&limit=5`
    and `?limit=5&page=2` share one entry.

Invalidation strategy:
  - Any event write (create, update, delete) deletes every event list key
  - Application acceptance and cancellation change `registered_count`, so
    they invalidate too
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

  All event list keys start with "events:list:" so we can SCAN and delete
  them.

Single events are never cached; the application workflow reads live
capacity counters.

Redis is optional. When it is disabled or unreachable every call degrades to
a cache miss / no-op and the API keeps serving from the database.
"""

import json
from typing import Mapping, Optional
from urllib.parse import urlencode

import redis.asyncio as redis
from eventhub.core.config import get_settings
from eventhub.core.logging import get_logger
from eventhub.core.metrics import record_cache_operation, redis_connection_errors

logger = get_logger(__name__)
settings = get_settings()

EVENT_LIST_PREFIX = "events:list:"
_UNLINK_BATCH = 500

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
            redis_connection_errors.inc()
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def make_event_list_key(params: Mapping[str, str]) -> str:
    return EVENT_LIST_PREFIX + urlencode(sorted(params.items()))


async def get_cached_events(params: Mapping[str, str]) -> Optional[dict]:
    """Retrieve cached event list response."""
    client = await get_redis()
    if not client:
        return None

    key = make_event_list_key(params)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=bool(data))
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_events(params: Mapping[str, str], data: dict) -> None:
    """Cache event list response with TTL."""
    client = await get_redis()
    if not client:
        return

    key = make_event_list_key(params)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_event_cache() -> None:
    """
    Drop every cached event listing. Keys are collected with SCAN and
    unlinked in batches so a large keyspace never blocks Redis.
    """
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        batch: list[str] = []
        async for key in client.scan_iter(match=EVENT_LIST_PREFIX + "*", count=100):
            batch.append(key)
            if len(batch) >= _UNLINK_BATCH:
                deleted += await client.unlink(*batch)
                batch.clear()
        if batch:
            deleted += await client.unlink(*batch)
        record_cache_operation("invalidate", hit=deleted > 0)
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
