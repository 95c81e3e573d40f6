"""Counter store: Redis connection pool plus the atomic counter primitives
the issue quota is built on.

``CounterStore`` is the seam the quota talks to; ``RedisCounterStore`` is the
production backend. Every primitive is a single Redis round trip, so no
caller ever read-modify-writes a counter.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis
import structlog
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from swachh.exceptions import RateLimitUnavailable

logger = structlog.get_logger()

_pool: redis.Redis | None = None

# Decrement only a positive counter. Absent keys stay absent and the TTL is
# left alone (DECR preserves it, SET ... KEEPTTL preserves it).
_DECR_IF_POSITIVE = """
local current = tonumber(redis.call('GET', KEYS[1]))
if current == nil then
    return 0
end
if current > 0 then
    return redis.call('DECR', KEYS[1])
end
if current < 0 then
    redis.call('SET', KEYS[1], 0, 'KEEPTTL')
end
return 0
"""

# Count one attempt against a limit in a single round trip. A key without a
# TTL gets the window armed, so a counter can never outlive its window. An
# attempt over the limit is undone before returning 0; allowed returns 1.
_INCR_IF_BELOW = """
local count = redis.call('INCR', KEYS[1])
if redis.call('TTL', KEYS[1]) == -1 then
    redis.call('EXPIRE', KEYS[1], ARGV[2])
end
if count > tonumber(ARGV[1]) then
    redis.call('DECR', KEYS[1])
    return 0
end
return 1
"""


async def init_redis(url: str) -> None:
    """Initialize the Redis connection pool."""
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    """Get the Redis client."""
    if _pool is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _pool


class CounterStore(ABC):
    """Integer counters with native expiry and atomic increment/decrement."""

    @abstractmethod
    async def incr(self, key: str) -> int:
        """Increment and return the new value (absent counts as 0)."""

    @abstractmethod
    async def decr(self, key: str) -> int:
        """Decrement and return the new value (absent counts as 0)."""

    @abstractmethod
    async def decr_if_positive(self, key: str) -> int:
        """Decrement only when the value is > 0. Returns the resulting value."""

    @abstractmethod
    async def incr_if_below(self, key: str, limit: int, seconds: int) -> bool:
        """Atomically count one attempt if the value stays within ``limit``.

        Arms a ``seconds`` expiry on a key that has none. An attempt over the
        limit leaves the value unchanged and returns False.
        """

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> None:
        """Arm the key to disappear ``seconds`` from now."""

    @abstractmethod
    async def get(self, key: str) -> int | None:
        """Current value, or None when the key is absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: int) -> None:
        """Overwrite the value."""

    async def ping(self) -> bool:
        return True


@asynccontextmanager
async def _translate_errors(op: str, key: str) -> AsyncIterator[None]:
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as exc:
        logger.error("store_unavailable", store="redis", op=op, key=key, error=str(exc))
        raise RateLimitUnavailable from exc


class RedisCounterStore(CounterStore):
    """CounterStore backed by a shared ``redis.asyncio`` client."""

    def __init__(self, client: redis.Redis) -> None:
        self.client = client
        self._decr_if_positive = client.register_script(_DECR_IF_POSITIVE)
        self._incr_if_below = client.register_script(_INCR_IF_BELOW)

    async def incr(self, key: str) -> int:
        async with _translate_errors("incr", key):
            return int(await self.client.incr(key))

    async def decr(self, key: str) -> int:
        async with _translate_errors("decr", key):
            return int(await self.client.decr(key))

    async def decr_if_positive(self, key: str) -> int:
        async with _translate_errors("decr_if_positive", key):
            return int(await self._decr_if_positive(keys=[key]))

    async def incr_if_below(self, key: str, limit: int, seconds: int) -> bool:
        async with _translate_errors("incr_if_below", key):
            return bool(int(await self._incr_if_below(keys=[key], args=[limit, seconds])))

    async def expire(self, key: str, seconds: int) -> None:
        async with _translate_errors("expire", key):
            await self.client.expire(key, seconds)

    async def get(self, key: str) -> int | None:
        async with _translate_errors("get", key):
            raw = await self.client.get(key)
        return None if raw is None else int(raw)

    async def set(self, key: str, value: int) -> None:
        async with _translate_errors("set", key):
            await self.client.set(key, value)

    async def ping(self) -> bool:
        async with _translate_errors("ping", ""):
            return bool(await self.client.ping())


def get_counter_store() -> CounterStore:
    """FastAPI dependency: the counter store bound to the shared pool."""
    try:
        client = get_redis()
    except RuntimeError as exc:
        raise RateLimitUnavailable from exc
    return RedisCounterStore(client)
