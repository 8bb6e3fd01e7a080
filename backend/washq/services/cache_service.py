"""
Redis caching for the machine list.

CACHING STRATEGY
================

What we cache:
  - The full machine list response (JSON-serialized)
  - Cache key: "machines:list"

Why:
  - Every client polls the machine list; it is by far the most frequent read
  - One key, because the list is small and always served whole

Invalidation strategy:
  - The registry runs an update cycle after every committed change; the
    cache listener deletes the key on each cycle
  - Other workers share the same Redis, so a change in one worker
    invalidates the list for all of them
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

Why NOT cache single machines or bookings:
  - Booking decisions must read the store inside the machine lock; a cached
    status would let two users take the same free machine
"""

import json
from typing import Optional

from washq.core.config import get_settings
from washq.core.logging import get_logger
from washq.core.metrics import record_cache_operation
from washq.infrastructure.redis_client import get_redis
from washq.schemas.machine import Machine

logger = get_logger(__name__)

MACHINE_LIST_KEY = "machines:list"


async def get_cached_machines() -> Optional[dict]:
    """Retrieve the cached machine list response."""
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(MACHINE_LIST_KEY)
        if data:
            record_cache_operation("get", hit=True)
            logger.debug("cache_hit", key=MACHINE_LIST_KEY)
            return json.loads(data)
        record_cache_operation("get", hit=False)
        logger.debug("cache_miss", key=MACHINE_LIST_KEY)
    except Exception as e:
        logger.error("cache_get_error", key=MACHINE_LIST_KEY, error=str(e))

    return None


async def set_cached_machines(data: dict) -> None:
    """Cache the machine list response with TTL."""
    client = await get_redis()
    if not client:
        return

    ttl = get_settings().REDIS_CACHE_TTL
    try:
        await client.setex(MACHINE_LIST_KEY, ttl, json.dumps(data, default=str))
        logger.debug("cache_set", key=MACHINE_LIST_KEY, ttl=ttl)
    except Exception as e:
        logger.error("cache_set_error", key=MACHINE_LIST_KEY, error=str(e))


async def invalidate_machine_cache(machines: Optional[list[Machine]] = None) -> None:
    """
    Drop the cached machine list.
    Registered as a registry listener, hence the unused machines argument.
    """
    client = await get_redis()
    if not client:
        return

    try:
        deleted = await client.delete(MACHINE_LIST_KEY)
        logger.debug("cache_invalidated", keys_deleted=deleted)
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
