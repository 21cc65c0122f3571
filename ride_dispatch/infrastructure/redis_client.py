"""Shared Redis pool backing the driver registry."""

import redis.asyncio as aioredis

from ride_dispatch.config import settings

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url,
    decode_responses=True,
    socket_timeout=settings.redis_socket_timeout_seconds,
    socket_connect_timeout=settings.redis_socket_timeout_seconds,
)


async def get_redis() -> aioredis.Redis:
    """Client on the shared pool; cheap to create per request."""
    return aioredis.Redis(connection_pool=_pool)


async def close_pool() -> None:
    """Drop every pooled connection (application shutdown)."""
    await _pool.disconnect()
