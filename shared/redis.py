"""Redis client and the short-lived locks built on it."""

from __future__ import annotations

import uuid

import redis.asyncio as redis
import structlog

from shared.config import get_settings

logger = structlog.get_logger()

_redis_client: redis.Redis | None = None

# Delete the key only if it still holds the caller's token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def create_redis(url: str | None = None) -> redis.Redis:
    return redis.from_url(url or get_settings().redis_url, encoding="utf-8", decode_responses=True)


async def get_redis() -> redis.Redis:
    """Get or create the shared Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = create_redis()
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


async def acquire_lock(client: redis.Redis, key: str, ttl_seconds: int) -> str | None:
    """Take ``key`` for ``ttl_seconds``. Returns the owner token, or None if held."""
    token = uuid.uuid4().hex
    if await client.set(key, token, nx=True, ex=ttl_seconds):
        return token
    return None


async def release_lock(client: redis.Redis, key: str, token: str) -> bool:
    """Release ``key`` if ``token`` still owns it. Never raises."""
    try:
        return bool(await client.eval(_RELEASE_SCRIPT, 1, key, token))
    except Exception as e:
        logger.warning("lock_release_failed", key=key, error=str(e))
        return False
