"""Counter stores backing the rate limiter.

A store offers one atomic primitive, increment-and-get, which starts a fresh
window (count 1, expiry ``window`` seconds ahead) when the key is absent or
expired. Windows are fixed: later increments never extend the expiry.
"""

import math
import threading
import time
from collections.abc import Callable
from typing import Protocol

from redis.asyncio import Redis


class CounterStore(Protocol):
    """Shared counter store with TTL-based expiry."""

    async def incr(self, key: str, window: float) -> int:
        """Atomically increment ``key`` and return the new count."""
        ...

    async def ttl(self, key: str) -> float:
        """Seconds until ``key``'s window expires; 0 when there is no live window."""
        ...


class MemoryCounterStore:
    """In-process store; correct for a single worker process only.

    Expired windows are swept at most once per ``sweep_interval`` seconds
    from inside ``incr``, so keys that are never hit again do not pile up.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = 60.0,
    ) -> None:
        self.clock = clock
        self.sweep_interval = sweep_interval
        self._windows: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._next_sweep = clock() + sweep_interval

    @property
    def window_count(self) -> int:
        """Windows currently held, live or awaiting a sweep."""
        return len(self._windows)

    def _live(self, key: str, now: float) -> tuple[int, float] | None:
        entry = self._windows.get(key)
        if entry is None:
            return None
        if entry[1] <= now:
            del self._windows[key]
            return None
        return entry

    def _sweep(self, now: float) -> int:
        expired = [key for key, (_, expires_at) in self._windows.items() if expires_at <= now]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self.sweep_interval
        return len(expired)

    async def incr(self, key: str, window: float) -> int:
        with self._lock:
            now = self.clock()
            if now >= self._next_sweep:
                self._sweep(now)
            entry = self._live(key, now)
            if entry is None:
                entry = (1, now + window)
            else:
                entry = (entry[0] + 1, entry[1])
            self._windows[key] = entry
            return entry[0]

    async def ttl(self, key: str) -> float:
        with self._lock:
            now = self.clock()
            entry = self._live(key, now)
            return 0.0 if entry is None else entry[1] - now

    def purge(self) -> int:
        """Drop expired windows now; returns how many were removed."""
        with self._lock:
            return self._sweep(self.clock())


class RedisCounterStore:
    """Store shared across processes through Redis.

    INCR and ``PEXPIRE ... NX`` run in one MULTI/EXEC transaction, so the
    expiry is set exactly once per window and concurrent increments are
    serialised by Redis.
    """

    def __init__(self, redis: Redis, prefix: str = "") -> None:
        self.redis = redis
        self.prefix = prefix

    async def incr(self, key: str, window: float) -> int:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.incr(self.prefix + key)
            pipe.pexpire(self.prefix + key, math.ceil(window * 1000), nx=True)
            count, _ = await pipe.execute()
        return int(count)

    async def ttl(self, key: str) -> float:
        remaining = await self.redis.pttl(self.prefix + key)
        # -2: no key, -1: key without expiry
        if remaining is None or remaining < 0:
            return 0.0
        return remaining / 1000

    async def close(self) -> None:
        await self.redis.aclose()
