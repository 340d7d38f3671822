"""Tests for rate-limit counter stores."""

import asyncio
import os
from unittest.mock import AsyncMock

import pytest

from visitrack.tracking_server.services.counters import MemoryCounterStore, RedisCounterStore


class TestMemoryCounterStore:
    """Tests for the in-process store."""

    async def test_incr_starts_window(self, store, clock):
        assert await store.incr("k", 30) == 1
        assert await store.incr("k", 30) == 2
        assert await store.ttl("k") == 30

        clock.advance(12)
        assert await store.ttl("k") == 18

    async def test_expiry_resets_count(self, store, clock):
        await store.incr("k", 30)
        clock.advance(30)

        assert await store.ttl("k") == 0
        assert await store.incr("k", 30) == 1

    async def test_ttl_unknown_key(self, store):
        assert await store.ttl("missing") == 0

    async def test_purge(self, store, clock):
        await store.incr("short", 5)
        await store.incr("long", 50)
        clock.advance(10)

        assert store.purge() == 1
        assert await store.ttl("long") == 40

    async def test_expired_windows_swept_by_incr(self, clock):
        """GIVEN many one-off keys WHEN their windows lapse SHOULD drop them without purge()."""
        store = MemoryCounterStore(clock=clock, sweep_interval=60)
        for n in range(5000):
            await store.incr(f"ratelimit:tracking:10.0.{n // 256}.{n % 256}", 60)
        assert store.window_count == 5000

        clock.advance(3600)
        await store.incr("ratelimit:tracking:203.0.113.9", 60)

        assert store.window_count == 1

    async def test_sweep_keeps_live_windows(self, clock):
        store = MemoryCounterStore(clock=clock, sweep_interval=10)
        await store.incr("short", 5)
        await store.incr("long", 120)

        clock.advance(10)
        assert await store.incr("other", 5) == 1

        assert store.window_count == 2
        assert await store.incr("long", 120) == 2


class _FakePipeline:
    def __init__(self, redis: "_FakeRedis") -> None:
        self.redis = redis
        self.ops: list[tuple] = []

    async def __aenter__(self) -> "_FakePipeline":
        return self

    async def __aexit__(self, *args: object) -> None:
        return None

    def incr(self, key: str) -> None:
        self.ops.append(("incr", key))

    def pexpire(self, key: str, ms: int, nx: bool = False) -> None:
        self.ops.append(("pexpire", key, ms, nx))

    async def execute(self) -> list:
        self.redis.executed.append(self.ops)
        self.redis.counts[self.ops[0][1]] = self.redis.counts.get(self.ops[0][1], 0) + 1
        return [self.redis.counts[self.ops[0][1]], True]


class _FakeRedis:
    def __init__(self) -> None:
        self.counts: dict[str, int] = {}
        self.executed: list[list[tuple]] = []
        self.pttl = AsyncMock(return_value=12_500)

    def pipeline(self, transaction: bool = True) -> _FakePipeline:
        assert transaction
        return _FakePipeline(self)


class TestRedisCounterStore:
    """Tests for the Redis-backed store."""

    async def test_incr_is_one_transaction(self):
        redis = _FakeRedis()
        store = RedisCounterStore(redis, prefix="vt:")

        assert await store.incr("ratelimit:tracking:1.2.3.4", 60) == 1
        assert await store.incr("ratelimit:tracking:1.2.3.4", 60) == 2

        assert redis.executed[0] == [
            ("incr", "vt:ratelimit:tracking:1.2.3.4"),
            ("pexpire", "vt:ratelimit:tracking:1.2.3.4", 60_000, True),
        ]

    async def test_ttl_in_seconds(self):
        redis = _FakeRedis()
        assert await RedisCounterStore(redis).ttl("k") == 12.5

    @pytest.mark.parametrize("pttl", [-1, -2])
    async def test_ttl_without_window(self, pttl):
        redis = _FakeRedis()
        redis.pttl.return_value = pttl
        assert await RedisCounterStore(redis).ttl("k") == 0


@pytest.mark.integration
@pytest.mark.skipif(not os.environ.get("TEST_REDIS_URL"), reason="TEST_REDIS_URL not set")
class TestRedisIntegration:
    """Tests against a real Redis server."""

    async def test_concurrent_incr_exact(self):
        from redis.asyncio import Redis

        redis = Redis.from_url(os.environ["TEST_REDIS_URL"])
        store = RedisCounterStore(redis, prefix=f"test:{os.getpid()}:")
        try:
            counts = await asyncio.gather(*(store.incr("burst", 5) for _ in range(50)))
            assert sorted(counts) == list(range(1, 51))
            assert 0 < await store.ttl("burst") <= 5
        finally:
            await redis.delete(store.prefix + "burst")
            await store.close()


class TestLifespanStore:
    """Tests for the counter store wired up by the app lifespan."""

    async def test_redis_store_closed_on_shutdown(self, monkeypatch):
        from visitrack.tracking_server import main

        redis = AsyncMock()

        class _RedisFactory:
            @staticmethod
            def from_url(url: str) -> AsyncMock:
                assert url == "redis://counters:6379/0"
                return redis

        monkeypatch.setattr(main, "Redis", _RedisFactory)
        monkeypatch.setattr(main.settings, "redis_url", "redis://counters:6379/0")
        monkeypatch.setattr(main.settings, "forwarder", "log")

        async with main.lifespan(main.app):
            assert isinstance(main.app.state.rate_limiter.store, RedisCounterStore)
            redis.aclose.assert_not_awaited()

        redis.ping.assert_awaited_once()
        redis.aclose.assert_awaited_once()

    async def test_memory_store_without_redis_url(self, monkeypatch):
        from visitrack.tracking_server import main

        monkeypatch.setattr(main.settings, "redis_url", None)
        monkeypatch.setattr(main.settings, "forwarder", "log")

        async with main.lifespan(main.app):
            assert isinstance(main.app.state.rate_limiter.store, MemoryCounterStore)
