# config/cache.py
from typing import Optional
from redis.asyncio import Redis, from_url
from config.settings import settings

_redis: Optional[Redis] = None


async def get_redis() -> Redis:
    """
    Lazily connected client for the knowledge hash and the rate limiter.
    Values come back as str: knowledge records are stored as JSON text.
    """
    global _redis
    if _redis is not None:
        return _redis
    client = from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_keepalive=True,
        health_check_interval=30,
    )
    # fail at startup, not on the first retrieval
    await client.ping()
    _redis = client
    return _redis


async def close_redis() -> None:
    global _redis
    client, _redis = _redis, None
    if client is not None:
        await client.aclose()
