"""
Route cache.

Short-lived memoization of optimized routes per (organization, courier).
Entries are not invalidated when the courier reports a new position; a route
can therefore lag the courier by up to one TTL.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Optional, Tuple

from flora_backend.app.schemas.route import RouteResult

logger = logging.getLogger("flora.route_cache")

DEFAULT_ROUTE_TTL_SECONDS = 45

ComputeFn = Callable[[], Awaitable[RouteResult]]


def route_cache_key(organization_id: int, courier_id: int) -> str:
    return f"route:{organization_id}:{courier_id}"


class RouteCache(ABC):
    """Cache interface used by the route service."""

    def __init__(self, ttl_seconds: int = DEFAULT_ROUTE_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds

    @abstractmethod
    async def get(self, organization_id: int, courier_id: int) -> Optional[RouteResult]:
        ...

    @abstractmethod
    async def put(self, organization_id: int, courier_id: int, result: RouteResult) -> None:
        ...

    @abstractmethod
    async def invalidate(self, organization_id: int, courier_id: int) -> None:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...

    async def get_or_compute(self, organization_id: int, courier_id: int, compute_fn: ComputeFn) -> RouteResult:
        """Return the fresh cached route, or compute, store and return a new one."""
        cached = await self.get(organization_id, courier_id)
        if cached is not None:
            return cached

        logger.info("Route cache miss for %s", route_cache_key(organization_id, courier_id))
        result = await compute_fn()
        await self.put(organization_id, courier_id, result)
        return result


class InMemoryRouteCache(RouteCache):
    """
    Process-local cache with lazy expiry.

    Concurrent misses for the same key are collapsed into one computation.
    """

    def __init__(self, ttl_seconds: int = DEFAULT_ROUTE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        super().__init__(ttl_seconds)
        self._clock = clock
        self._store: Dict[str, Tuple[RouteResult, float]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def get(self, organization_id: int, courier_id: int) -> Optional[RouteResult]:
        key = route_cache_key(organization_id, courier_id)
        entry = self._store.get(key)
        if entry is None:
            return None

        result, expires_at = entry
        if self._clock() >= expires_at:
            del self._store[key]
            return None
        return result

    async def put(self, organization_id: int, courier_id: int, result: RouteResult) -> None:
        key = route_cache_key(organization_id, courier_id)
        self._store[key] = (result, self._clock() + self.ttl_seconds)

    async def invalidate(self, organization_id: int, courier_id: int) -> None:
        key = route_cache_key(organization_id, courier_id)
        self._store.pop(key, None)
        self._locks.pop(key, None)

    async def clear(self) -> None:
        self._store.clear()
        self._locks.clear()

    async def get_or_compute(self, organization_id: int, courier_id: int, compute_fn: ComputeFn) -> RouteResult:
        cached = await self.get(organization_id, courier_id)
        if cached is not None:
            return cached

        key = route_cache_key(organization_id, courier_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            # Another request may have filled the entry while we waited
            return await super().get_or_compute(organization_id, courier_id, compute_fn)


class RedisRouteCache(RouteCache):
    """Shared cache backed by Redis; expiry is delegated to the key TTL."""

    def __init__(self, redis, ttl_seconds: int = DEFAULT_ROUTE_TTL_SECONDS):
        super().__init__(ttl_seconds)
        self.redis = redis
        self._keys: set = set()

    async def get(self, organization_id: int, courier_id: int) -> Optional[RouteResult]:
        raw = await self.redis.get(route_cache_key(organization_id, courier_id))
        if raw is None:
            return None
        return RouteResult.model_validate_json(raw)

    async def put(self, organization_id: int, courier_id: int, result: RouteResult) -> None:
        key = route_cache_key(organization_id, courier_id)
        await self.redis.set(key, result.model_dump_json(), ex=self.ttl_seconds)
        self._keys.add(key)

    async def invalidate(self, organization_id: int, courier_id: int) -> None:
        key = route_cache_key(organization_id, courier_id)
        await self.redis.delete(key)
        self._keys.discard(key)

    async def clear(self) -> None:
        # Only keys written by this process; TTL takes care of the rest
        for key in list(self._keys):
            await self.redis.delete(key)
        self._keys.clear()


def build_route_cache(backend: str, ttl_seconds: int, redis=None) -> RouteCache:
    """Create the process-wide route cache for the configured backend."""
    if backend == "redis":
        if redis is None:
            raise ValueError("Redis route cache requires a redis client")
        return RedisRouteCache(redis, ttl_seconds=ttl_seconds)
    if backend == "memory":
        return InMemoryRouteCache(ttl_seconds=ttl_seconds)
    raise ValueError(f"Unknown route cache backend: {backend}")
