"""
Redis cache for hydrated day views.

Hydrating a day joins the active template with the day-record tables and
the user's time-block overrides. The merged view is cached per
(user, date, generation).

Cache strategy:
    - Key format: day:view:{user_hash}:{YYYY-MM-DD}:{user_gen}.{day_gen}
    - Generation counters: day:gen:{user_hash}:{YYYY-MM-DD} (per day) and
      day:gen:{user_hash} (per user, bumped by time-block override changes)
    - TTL: AMP_DAY_CACHE_TTL seconds (default 300), never longer than the
      generation counters live
    - Degraded views are never cached
    - Invalidation: INCR the generation after every committed write

Readers fetch the generation *before* hydrating and store the view under
that generation. A write that commits while a reader is hydrating bumps
the generation, so a view built from the pre-write rows lands under a key
no later reader asks for.

Cache failures never block a request: reads fall back to hydration and
write/invalidate failures are logged.
"""

import json
import logging
from typing import Any

from src.lib.security import hash_uid
from src.services.redis_service import RedisService, get_redis_service

logger = logging.getLogger(__name__)

# Cache configuration
DAY_CACHE_PREFIX = "day:view:"
DAY_GENERATION_PREFIX = "day:gen:"
DAY_CACHE_TTL = 300  # 5 minutes
DAY_GENERATION_TTL = 7 * 24 * 3600


def _user_generation_key(user_id: int) -> str:
    return f"{DAY_GENERATION_PREFIX}{hash_uid(user_id)}"


def _day_generation_key(user_id: int, day: str) -> str:
    return f"{DAY_GENERATION_PREFIX}{hash_uid(user_id)}:{day}"


def _cache_key(user_id: int, day: str, generation: str) -> str:
    """Build the Redis cache key for a day view.

    Args:
        user_id: Owner of the day record
        day: Calendar date, YYYY-MM-DD
        generation: Token from get_day_generation()

    Returns:
        Redis key string
    """
    return f"{DAY_CACHE_PREFIX}{hash_uid(user_id)}:{day}:{generation}"


async def _read_counter(svc: RedisService, key: str) -> int:
    raw = await svc.get(key)
    return int(raw) if raw is not None else 0


async def get_day_generation(
    user_id: int,
    day: str,
    redis_service: RedisService | None = None,
) -> str:
    """Read the current generation token for a (user, date) view.

    Call this before hydrating and pass the token to the cache get/set.

    Returns:
        "{user_gen}.{day_gen}"; "0.0" when nothing was ever invalidated or
        Redis is unavailable
    """
    svc = redis_service or get_redis_service()
    try:
        user_gen = await _read_counter(svc, _user_generation_key(user_id))
        day_gen = await _read_counter(svc, _day_generation_key(user_id, day))
    except (ValueError, TypeError) as exc:
        logger.warning("Corrupt day view generation for %s: %s", _day_generation_key(user_id, day), exc)
        return "0.0"
    except Exception as exc:  # Intentional catch-all: a generation miss only costs a cache miss
        logger.warning("Unexpected error reading day view generation: %s", exc)
        return "0.0"
    return f"{user_gen}.{day_gen}"


async def get_cached_day_view(
    user_id: int,
    day: str,
    generation: str,
    redis_service: RedisService | None = None,
) -> dict[str, Any] | None:
    """Retrieve a cached day view from Redis.

    Returns:
        The cached view dict, or None if not cached / Redis unavailable
    """
    svc = redis_service or get_redis_service()
    key = _cache_key(user_id, day, generation)
    try:
        raw = await svc.get(key)
        if raw is None:
            return None
        data = json.loads(raw)
        if isinstance(data, dict) and data.get("date") == day:
            return data
        logger.warning("Invalid day view cache data for key %s", key)
        return None
    except (json.JSONDecodeError, TypeError) as exc:
        logger.warning("Failed to deserialize day view cache for %s: %s", key, exc)
        return None
    except Exception as exc:  # Intentional catch-all: cache miss is acceptable, never block on cache errors
        logger.warning("Unexpected error reading day view cache: %s", exc)
        return None


async def set_cached_day_view(
    user_id: int,
    day: str,
    generation: str,
    view: dict[str, Any],
    redis_service: RedisService | None = None,
    ttl: int = DAY_CACHE_TTL,
) -> bool:
    """Cache a hydrated day view under the generation read before hydrating.

    Degraded views (served after a template or store failure) are skipped so
    that the next read retries the real data.

    Returns:
        True if successfully cached, False otherwise
    """
    if view.get("degraded"):
        return False
    svc = redis_service or get_redis_service()
    key = _cache_key(user_id, day, generation)
    try:
        return await svc.set(key, view, ttl=min(ttl, DAY_GENERATION_TTL))
    except Exception as exc:  # Intentional catch-all: cache write failure is non-critical
        logger.warning("Failed to cache day view for %s: %s", key, exc)
        return False


async def invalidate_day_view(
    user_id: int,
    day: str,
    redis_service: RedisService | None = None,
) -> bool:
    """Invalidate the cached views of one day by bumping its generation.

    Call this after every committed write to the day record.

    Returns:
        True if the generation was bumped, False otherwise
    """
    svc = redis_service or get_redis_service()
    key = _day_generation_key(user_id, day)
    try:
        return await svc.incr(key, ttl=DAY_GENERATION_TTL) is not None
    except Exception as exc:  # Intentional catch-all: cache invalidation failure is non-critical
        logger.warning("Failed to invalidate day view cache for %s: %s", key, exc)
        return False


async def invalidate_user_days(
    user_id: int,
    redis_service: RedisService | None = None,
) -> bool:
    """Invalidate every cached day view of a user (time-block override changes)."""
    svc = redis_service or get_redis_service()
    key = _user_generation_key(user_id)
    try:
        return await svc.incr(key, ttl=DAY_GENERATION_TTL) is not None
    except Exception as exc:  # Intentional catch-all: cache invalidation failure is non-critical
        logger.warning("Failed to invalidate day view caches for %s: %s", key, exc)
        return False


__all__ = [
    "DAY_CACHE_PREFIX",
    "DAY_CACHE_TTL",
    "DAY_GENERATION_PREFIX",
    "DAY_GENERATION_TTL",
    "get_day_generation",
    "get_cached_day_view",
    "set_cached_day_view",
    "invalidate_day_view",
    "invalidate_user_days",
]
