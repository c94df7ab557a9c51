"""Counter stores: the shared state behind a rotator.

A store needs two primitives: INCR (atomic increment-and-return, creating the
key at 1) and EXPIRE (set a TTL on an existing key). Network-backed stores
translate their client library's failures into StoreUnavailableError.
"""

import threading
import time
from typing import Callable, Protocol, Union, runtime_checkable

from .errors import StoreUnavailableError


@runtime_checkable
class CounterStore(Protocol):
    def incr(self, key: str) -> int: ...

    def expire(self, key: str, seconds: int) -> bool: ...

    def close(self) -> None: ...


@runtime_checkable
class AsyncCounterStore(Protocol):
    async def incr(self, key: str) -> int: ...

    async def expire(self, key: str, seconds: int) -> bool: ...

    async def close(self) -> None: ...


# ---------- in-process ----------


class MemoryCounterStore:
    """Thread-safe in-process store.

    Shared by every rotator in one process only; use Redis or Upstash to share
    counters across processes.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._values: dict[str, int] = {}
        self._deadlines: dict[str, float] = {}

    def _purge_expired(self, now: float) -> None:
        # window keys are never touched again once their minute passes, so sweep them all
        expired = [k for k, deadline in self._deadlines.items() if now >= deadline]
        for k in expired:
            self._values.pop(k, None)
            del self._deadlines[k]

    def incr(self, key: str) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            value = self._values.get(key, 0) + 1
            self._values[key] = value
            return value

    def expire(self, key: str, seconds: int) -> bool:
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            if key not in self._values:
                return False
            self._deadlines[key] = now + seconds
            return True

    def get(self, key: str) -> Union[int, None]:
        with self._lock:
            self._purge_expired(self._clock())
            return self._values.get(key)

    def ttl(self, key: str) -> Union[float, None]:
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            deadline = self._deadlines.get(key)
            return None if deadline is None else deadline - now

    def close(self) -> None:
        with self._lock:
            self._values.clear()
            self._deadlines.clear()


class AsyncMemoryCounterStore:
    """Awaitable facade over MemoryCounterStore, for AsyncKeyRotator."""

    def __init__(self, clock: Callable[[], float] = time.time, store: Union[MemoryCounterStore, None] = None):
        self.store = store if store is not None else MemoryCounterStore(clock=clock)

    async def incr(self, key: str) -> int:
        return self.store.incr(key)

    async def expire(self, key: str, seconds: int) -> bool:
        return self.store.expire(key, seconds)

    def get(self, key: str) -> Union[int, None]:
        return self.store.get(key)

    async def close(self) -> None:
        self.store.close()


# ---------- Redis protocol (redis-py) ----------


class RedisCounterStore:
    def __init__(self, client, owns_client: bool = False):
        """Wrap a redis.Redis client.

        Args:
            client: a redis.Redis (or compatible) instance
            owns_client: close the client when the store is closed
        """
        self._client = client
        self._owns_client = owns_client

    @classmethod
    def from_url(cls, url: str, **kwargs):
        import redis  # noqa: PLC0415

        return cls(redis.Redis.from_url(url, **kwargs), owns_client=True)

    def incr(self, key: str) -> int:
        import redis  # noqa: PLC0415

        try:
            return int(self._client.incr(key))
        except redis.exceptions.RedisError as e:
            raise StoreUnavailableError("INCR", key, str(e)) from e

    def expire(self, key: str, seconds: int) -> bool:
        import redis  # noqa: PLC0415

        try:
            return bool(self._client.expire(key, seconds))
        except redis.exceptions.RedisError as e:
            raise StoreUnavailableError("EXPIRE", key, str(e)) from e

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


class AsyncRedisCounterStore:
    def __init__(self, client, owns_client: bool = False):
        """Wrap a redis.asyncio.Redis client."""
        self._client = client
        self._owns_client = owns_client

    @classmethod
    def from_url(cls, url: str, **kwargs):
        import redis.asyncio as aioredis  # noqa: PLC0415

        return cls(aioredis.Redis.from_url(url, **kwargs), owns_client=True)

    async def incr(self, key: str) -> int:
        import redis  # noqa: PLC0415

        try:
            return int(await self._client.incr(key))
        except redis.exceptions.RedisError as e:
            raise StoreUnavailableError("INCR", key, str(e)) from e

    async def expire(self, key: str, seconds: int) -> bool:
        import redis  # noqa: PLC0415

        try:
            return bool(await self._client.expire(key, seconds))
        except redis.exceptions.RedisError as e:
            raise StoreUnavailableError("EXPIRE", key, str(e)) from e

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
