"""
tests/test_cache.py
-------------------
Unit tests for the result cache backends.

Coverage:
  - InMemoryResultCache TTL expiry against an injected clock, including the
    sweep of expired entries on every write
  - NullResultCache never stores
  - RedisResultCache against a mocked redis.asyncio client, including the
    RedisError -> CacheFault translation
  - build_result_cache backend selection
"""

import unittest
from unittest.mock import AsyncMock, MagicMock

import redis.asyncio as redis

from allocation_base import CacheFault
from optimizer_config import CacheConfig
from budget_optimizer.cache import InMemoryResultCache, NullResultCache, RedisResultCache, build_result_cache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestInMemoryResultCache(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.cache = InMemoryResultCache(default_ttl_seconds=60, clock=self.clock)

    async def test_miss(self):
        self.assertIsNone(await self.cache.get("optimization:missing"))

    async def test_set_then_get(self):
        await self.cache.set("k", '{"a": 1}')
        self.assertEqual(await self.cache.get("k"), '{"a": 1}')

    async def test_entry_expires_after_default_ttl(self):
        await self.cache.set("k", "payload")
        self.clock.now += 59
        self.assertEqual(await self.cache.get("k"), "payload")
        self.clock.now += 1
        self.assertIsNone(await self.cache.get("k"))
        self.assertEqual(len(self.cache), 0)

    async def test_writes_evict_expired_entries(self):
        for index in range(3):
            await self.cache.set(f"old-{index}", "payload")
        self.clock.now += 60
        await self.cache.set("new", "payload")
        self.assertEqual(len(self.cache), 1)

    async def test_writes_keep_live_entries(self):
        await self.cache.set("short", "payload", ttl_seconds=5)
        await self.cache.set("long", "payload")
        self.clock.now += 10
        await self.cache.set("new", "payload")
        self.assertEqual(len(self.cache), 2)
        self.assertEqual(await self.cache.get("long"), "payload")

    async def test_explicit_ttl_overrides_default(self):
        await self.cache.set("k", "payload", ttl_seconds=5)
        self.clock.now += 5
        self.assertIsNone(await self.cache.get("k"))

    async def test_no_ttl_never_expires(self):
        cache = InMemoryResultCache(clock=self.clock)
        await cache.set("k", "payload")
        self.clock.now += 10 ** 9
        self.assertEqual(await cache.get("k"), "payload")

    async def test_set_replaces(self):
        await self.cache.set("k", "old")
        await self.cache.set("k", "new")
        self.assertEqual(await self.cache.get("k"), "new")

    async def test_delete_and_clear(self):
        await self.cache.set("a", "1")
        await self.cache.set("b", "2")
        await self.cache.delete("a")
        await self.cache.delete("never-stored")
        self.assertIsNone(await self.cache.get("a"))
        self.assertEqual(await self.cache.clear(), 1)
        self.assertEqual(len(self.cache), 0)


class TestNullResultCache(unittest.IsolatedAsyncioTestCase):

    async def test_never_stores(self):
        cache = NullResultCache()
        await cache.set("k", "payload")
        self.assertIsNone(await cache.get("k"))
        await cache.delete("k")
        self.assertEqual(await cache.clear(), 0)


class TestRedisResultCache(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.client = MagicMock()
        self.client.get = AsyncMock(return_value=None)
        self.client.set = AsyncMock()
        self.client.setex = AsyncMock()
        self.client.delete = AsyncMock(return_value=1)
        self.client.aclose = AsyncMock()
        self.cache = RedisResultCache("redis://localhost:6379/0", "optimization:",
                                      default_ttl_seconds=300, client=self.client)

    async def test_get(self):
        self.client.get.return_value = "payload"
        self.assertEqual(await self.cache.get("optimization:k"), "payload")
        self.client.get.assert_awaited_once_with("optimization:k")

    async def test_set_uses_setex_with_ttl(self):
        await self.cache.set("optimization:k", "payload")
        self.client.setex.assert_awaited_once_with("optimization:k", 300, "payload")
        self.client.set.assert_not_awaited()

    async def test_set_explicit_ttl(self):
        await self.cache.set("optimization:k", "payload", ttl_seconds=10)
        self.client.setex.assert_awaited_once_with("optimization:k", 10, "payload")

    async def test_set_without_ttl(self):
        cache = RedisResultCache("redis://localhost:6379/0", client=self.client)
        await cache.set("optimization:k", "payload")
        self.client.set.assert_awaited_once_with("optimization:k", "payload")

    async def test_read_error_becomes_cache_fault(self):
        self.client.get.side_effect = redis.ConnectionError("connection refused")
        with self.assertRaisesRegex(CacheFault, "Failed to read cache entry"):
            await self.cache.get("optimization:k")

    async def test_write_error_becomes_cache_fault(self):
        self.client.setex.side_effect = redis.TimeoutError("timed out")
        with self.assertRaisesRegex(CacheFault, "Failed to write cache entry"):
            await self.cache.set("optimization:k", "payload")

    async def test_delete(self):
        await self.cache.delete("optimization:k")
        self.client.delete.assert_awaited_once_with("optimization:k")

    async def test_clear_only_touches_prefixed_keys(self):
        seen_patterns = []

        async def scan_iter(match=None):
            seen_patterns.append(match)
            for key in ("optimization:a", "optimization:b"):
                yield key

        self.client.scan_iter = scan_iter
        self.assertEqual(await self.cache.clear(), 2)
        self.assertEqual(seen_patterns, ["optimization:*"])
        self.assertEqual(self.client.delete.await_count, 2)

    async def test_close(self):
        await self.cache.close()
        self.client.aclose.assert_awaited_once()
        # A second close has nothing to release
        await self.cache.close()
        self.client.aclose.assert_awaited_once()


class TestBuildResultCache(unittest.TestCase):

    def test_memory_is_default(self):
        cache = build_result_cache(CacheConfig())
        self.assertIsInstance(cache, InMemoryResultCache)
        self.assertEqual(cache.default_ttl_seconds, 86_400)

    def test_none(self):
        self.assertIsInstance(build_result_cache(CacheConfig(backend='none')), NullResultCache)

    def test_redis(self):
        cache = build_result_cache(CacheConfig(backend='redis', redis_host='cache', redis_port=6380, redis_db=2))
        self.assertIsInstance(cache, RedisResultCache)
        self.assertEqual(cache.redis_url, "redis://cache:6380/2")
        self.assertEqual(cache.default_ttl_seconds, 86_400)


if __name__ == "__main__":
    unittest.main()
