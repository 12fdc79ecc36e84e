"""
Redis caching for analytics reports.

CACHING STRATEGY
================

What we cache:
  - Full AnalyticsReport responses for windows that have already ended, JSON-serialized
  - Key pattern: "analytics:report:gen={gen}&start={start}&end={end}&cancelled={flag}"

Why:
  - A report is one scan over a possibly large window; dashboards poll it
  - The same window is requested repeatedly by many viewers

Invalidation strategy (generation counter):
  - "analytics:generation" is bumped (INCR) by every booking write made
    through the API (create, status change, cancellation, coupled update)
  - A reader fetches the generation BEFORE scanning and stores its report
    under that generation only. A write that lands mid-scan bumps the
    counter, so the stale report goes to a key nobody reads again
  - Old-generation keys are swept with SCAN; TTL expiry is the safety net

Redis is advisory. When it is disabled or unreachable every call below is
a no-op and reports are computed from the store.
"""

from datetime import date
from typing import Optional

import redis.asyncio as redis
from dispatch_core.core.config import get_settings
from dispatch_core.core.logging import get_logger
from dispatch_core.core.metrics import record_cache_operation, redis_connection_errors
from dispatch_core.schemas.analytics import AnalyticsReport

logger = get_logger(__name__)
settings = get_settings()

REPORT_KEY_PREFIX = "analytics:report:"
GENERATION_KEY = "analytics:generation"

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
            redis_connection_errors.inc()
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


def _make_report_key(start_date: date, end_date: date, include_cancelled: bool, generation: int) -> str:
    return (
        f"{REPORT_KEY_PREFIX}gen={generation}&start={start_date.isoformat()}"
        f"&end={end_date.isoformat()}&cancelled={int(include_cancelled)}"
    )


async def get_report_generation() -> Optional[int]:
    """
    Current cache generation, read before a report is computed.
    Returns None when Redis is disabled or unreachable (no caching).
    """
    client = await get_redis()
    if not client:
        return None

    try:
        value = await client.get(GENERATION_KEY)
        return int(value) if value else 0
    except Exception as e:
        redis_connection_errors.inc()
        logger.error("cache_generation_error", error=str(e))
        return None


async def get_cached_report(
    start_date: date, end_date: date, include_cancelled: bool, generation: Optional[int]
) -> Optional[AnalyticsReport]:
    if generation is None:
        return None
    client = await get_redis()
    if not client:
        return None

    key = _make_report_key(start_date, end_date, include_cancelled, generation)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=bool(data))
        if data:
            logger.debug("cache_hit", key=key)
            return AnalyticsReport.model_validate_json(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        redis_connection_errors.inc()
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_report(
    start_date: date,
    end_date: date,
    include_cancelled: bool,
    generation: Optional[int],
    report: AnalyticsReport,
) -> None:
    """Store `report` under the generation read before it was computed."""
    if generation is None:
        return
    client = await get_redis()
    if not client:
        return

    key = _make_report_key(start_date, end_date, include_cancelled, generation)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, report.model_dump_json())
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        redis_connection_errors.inc()
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_report_cache() -> None:
    """
    Invalidate all cached analytics reports.
    Bumps the generation first, then sweeps old report keys with SCAN.
    """
    client = await get_redis()
    if not client:
        return

    try:
        generation = await client.incr(GENERATION_KEY)
        deleted = 0
        async for key in client.scan_iter(match=f"{REPORT_KEY_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", generation=generation, keys_deleted=deleted)
    except Exception as e:
        redis_connection_errors.inc()
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
