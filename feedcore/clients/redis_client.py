"""
Redis client wrapper.

One connection pool per process, created at startup and shared by every
service in feedcore.services. Besides the raw client this module offers the
JSON get/set helpers used for the small cached documents (following-id
lists, activity metrics, core-feed pages).
"""
import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis

from feedcore.config import settings

logger = logging.getLogger(__name__)

_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    global _redis
    _redis = aioredis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        decode_responses=True,
    )
    await _redis.ping()
    logger.info("Redis connected at %s:%s", settings.redis_host, settings.redis_port)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def set_redis_client(client: Optional[aioredis.Redis]) -> None:
    """Swap the process-wide client (tests install a fakeredis instance here)."""
    global _redis
    _redis = client


# ─────────────────────── JSON documents ───────────────────────────────────

async def get_json(r: aioredis.Redis, key: str) -> Any:
    """Return the decoded JSON value at `key`, or None when absent."""
    raw = await r.get(key)
    if raw is None:
        return None
    return json.loads(raw)


async def set_json(r: aioredis.Redis, key: str, value: Any, ttl: int | None = None) -> None:
    payload = json.dumps(value, default=str)
    if ttl:
        await r.set(key, payload, ex=ttl)
    else:
        await r.set(key, payload)
