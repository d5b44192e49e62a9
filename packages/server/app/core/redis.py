"""Shared Redis client for the verification challenge store."""

from __future__ import annotations

import redis.asyncio as redis

from app.core.config import get_settings

_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Return the process-wide client, creating it on first use."""
    global _client
    if _client is None:
        _client = redis.from_url(get_settings().redis_url, decode_responses=True)
    return _client


async def ping_redis() -> bool:
    """Readiness probe: ``True`` when Redis answers ``PING``."""
    return bool(await (await get_redis()).ping())


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
