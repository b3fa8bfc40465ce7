"""
Redis service backing the day-view cache.

The cache is an optimization only: when Redis is unreachable every read is
a miss and every write is dropped. After a failed connection attempt the
service waits ``RECONNECT_INTERVAL`` seconds before trying again, so an
outage does not add a connect timeout to every request.
"""

import dataclasses
import json
import logging
import os
import ssl
import time
from datetime import date, datetime
from enum import Enum
from typing import Any

import redis.asyncio as redis

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

RECONNECT_INTERVAL = 30.0


class AmpJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for cached values:
    - dataclasses → dict via dataclasses.asdict()
    - datetime/date → .isoformat()
    - Enum → .value
    - set/frozenset → sorted list
    - Any other non-serializable → str()
    """

    def default(self, obj: Any) -> Any:
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return str(obj)


class RedisService:
    """
    Thin async wrapper over a lazily connected Redis client.

    Args:
        redis_url: Connection URL (default: ``REDIS_URL`` from settings)
        clock: Monotonic time source used for the reconnect back-off
    """

    def __init__(self, redis_url: str | None = None, clock: Any = time.monotonic) -> None:
        self._redis_url = redis_url or get_settings().redis_url
        self._client: redis.Redis | None = None
        self._clock = clock
        self._retry_at: float | None = None

    @staticmethod
    def _tls_kwargs(redis_url: str) -> dict[str, Any]:
        """TLS keyword arguments for ``rediss://`` URLs (CA from REDIS_TLS_CERT_PATH)."""
        if not redis_url.startswith("rediss://"):
            return {}
        ssl_ctx = ssl.create_default_context(cafile=os.environ.get("REDIS_TLS_CERT_PATH") or None)
        ssl_ctx.check_hostname = True
        ssl_ctx.verify_mode = ssl.CERT_REQUIRED
        return {"ssl": ssl_ctx}

    @property
    def backing_off(self) -> bool:
        return self._retry_at is not None and self._clock() < self._retry_at

    async def _ensure_async_client(self) -> redis.Redis | None:
        """Get or create the async client; None while Redis is unreachable."""
        if self._client is not None:
            return self._client
        if self.backing_off:
            return None
        client = redis.from_url(  # type: ignore[no-untyped-call]
            self._redis_url,
            decode_responses=True,
            **self._tls_kwargs(self._redis_url),
        )
        try:
            await client.ping()
        except (redis.ConnectionError, redis.TimeoutError, OSError) as exc:
            logger.warning("Redis unreachable, day-view cache disabled for %.0fs: %s", RECONNECT_INTERVAL, exc)
            self._retry_at = self._clock() + RECONNECT_INTERVAL
            return None
        self._client = client
        self._retry_at = None
        return client

    async def get(self, key: str) -> str | None:
        client = await self._ensure_async_client()
        if client is None:
            return None
        result = await client.get(key)
        return str(result) if result is not None else None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store ``value`` as JSON, with an optional TTL in seconds."""
        client = await self._ensure_async_client()
        if client is None:
            return False
        payload = json.dumps(value, cls=AmpJSONEncoder)
        if ttl:
            return bool(await client.setex(key, ttl, payload))
        return bool(await client.set(key, payload))

    async def delete(self, key: str) -> bool:
        client = await self._ensure_async_client()
        if client is None:
            return False
        return bool(await client.delete(key))

    async def incr(self, key: str, ttl: int | None = None) -> int | None:
        """Increment a counter, refreshing its TTL; None while Redis is unreachable."""
        client = await self._ensure_async_client()
        if client is None:
            return None
        value = int(await client.incr(key))
        if ttl:
            await client.expire(key, ttl)
        return value

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# Singleton instance
_redis_service: RedisService | None = None


def get_redis_service() -> RedisService:
    """Get Redis service singleton."""
    global _redis_service
    if _redis_service is None:
        _redis_service = RedisService()
    return _redis_service


__all__ = ["AmpJSONEncoder", "RECONNECT_INTERVAL", "RedisService", "get_redis_service"]
