"""
Shared Redis connection.

Only used when routes are cached in Redis (``route_cache_backend=redis``) so
that several API workers see the same cached routes. ``from_url`` connects
lazily; importing this module never opens a socket.
"""

import redis.asyncio as redis
from flora_backend.app.core.config import settings

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def ping_redis() -> bool:
    """True when Redis answers PING, False when it is unreachable."""
    try:
        return bool(await redis_client.ping())
    except redis.RedisError:
        return False
