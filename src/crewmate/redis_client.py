"""Shared Redis client for notification pub/sub and the reward claim queue."""

import redis.asyncio as redis

_client: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 50) -> redis.Redis:
    """Create the process-wide client. Connections open lazily on first use."""
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        decode_responses=True,
        max_connections=max_connections,
        health_check_interval=30,
    )
    return _client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    if _client is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _client


async def redis_ready() -> bool:
    """True when the shared client answers PING."""
    return bool(await get_redis().ping())
