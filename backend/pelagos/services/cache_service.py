"""
Redis caching for time-slot availability.

CACHING STRATEGY
================

What we cache:
  - The public availability view of a single time slot
  - Key pattern: "slots:availability:{slot_id}"

Why:
  - Slot pages are polled by every visitor deciding whether to book
  - seats_left only changes when a payment settles

Invalidation strategy:
  - The cleanup outbox deletes the slot key right after committing a seat
    decrement
  - A short TTL is the safety net for writes made outside this service

The cache is advisory. Nothing in the payment flow reads it; the database
row is the only source of truth for seats_left. Every Redis failure is
logged and treated as a miss.
"""

import json
from typing import Optional

import redis.asyncio as redis
from pelagos.core.config import get_settings
from pelagos.core.logging import get_logger

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


def _make_slot_key(slot_id: str) -> str:
    return f"slots:availability:{slot_id}"


async def get_cached_slot(slot_id: str) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = _make_slot_key(slot_id)
    try:
        data = await client.get(key)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_slot(slot_id: str, data: dict) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_slot_key(slot_id)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_slot_cache(slot_id: str) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_slot_key(slot_id)
    try:
        await client.delete(key)
        logger.info("cache_invalidated", key=key)
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
