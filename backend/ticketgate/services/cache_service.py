"""
Redis cache for tier availability listings.

CACHING STRATEGY
================

What we cache:
  - The public tier listing for one event (price, currency, remaining)
  - Key pattern: "tiers:event:{event_id}"

Why:
  - Purchasers poll the listing far more often than they buy
  - A few seconds of staleness in "remaining" is harmless for display

Invalidation is tied to the write path:
  - Successful issuance deletes the event's key (remaining changed)
  - Allocation create/update deletes the event's key
  - Short TTL (REDIS_CACHE_TTL) as safety net

Never used for the reservation itself: reserve() always reads and writes the
database counter. Redis being down only costs a few extra reads.
"""

import json
from typing import Optional

import redis.asyncio as redis
from ticketgate.core.config import get_settings
from ticketgate.core.logging import get_logger
from ticketgate.core.metrics import record_cache_operation

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
        await _redis_client.aclose()
        _redis_client = None


def _make_tier_list_key(event_id: int) -> str:
    return f"tiers:event:{event_id}"


async def get_cached_tiers(event_id: int) -> Optional[list]:
    client = await get_redis()
    if not client:
        return None

    key = _make_tier_list_key(event_id)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=bool(data))
        if data:
            return json.loads(data)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_tiers(event_id: int, tiers: list) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_tier_list_key(event_id)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(tiers, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_tier_cache(event_id: int) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_tier_list_key(event_id)
    try:
        await client.delete(key)
        logger.debug("cache_invalidated", key=key)
    except Exception as e:
        logger.error("cache_invalidation_error", key=key, error=str(e))


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
