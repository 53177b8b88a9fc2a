"""
Result cache backends: in-process with TTL, Redis, and a no-op cache.
"""
import time
from typing import Dict, Optional, Tuple

import redis.asyncio as redis

from allocation_base import ResultCache, CacheFault
from optimizer_config import CacheConfig
from .logger import AppLogger

app_logger = AppLogger(__name__)


class InMemoryResultCache(ResultCache):
    """Process-local cache; entries expire on a monotonic-clock TTL"""

    def __init__(self, default_ttl_seconds: Optional[int] = None, clock=time.monotonic):
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        payload, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[key]
            return None
        return payload

    async def set(self, key: str, payload: str, ttl_seconds: Optional[int] = None):
        now = self._clock()
        self._purge_expired(now)
        ttl = ttl_seconds or self.default_ttl_seconds
        expires_at = now + ttl if ttl else None
        self._entries[key] = (payload, expires_at)

    async def delete(self, key: str):
        self._entries.pop(key, None)

    async def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)

    def _purge_expired(self, now: float):
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at is not None and now >= expires_at]
        for key in expired:
            del self._entries[key]


class NullResultCache(ResultCache):
    """Cache that never stores anything"""

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, payload: str, ttl_seconds: Optional[int] = None):
        pass

    async def delete(self, key: str):
        pass

    async def clear(self) -> int:
        return 0


class RedisResultCache(ResultCache):
    """Redis-backed cache; every transport error surfaces as CacheFault"""

    def __init__(self, redis_url: str, key_prefix: str = 'optimization:',
                 default_ttl_seconds: Optional[int] = None, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.default_ttl_seconds = default_ttl_seconds
        self._client = client

    async def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self.redis_url, decode_responses=True)
        return self._client

    async def get(self, key: str) -> Optional[str]:
        try:
            client = await self._get_client()
            return await client.get(key)
        except redis.RedisError as e:
            raise CacheFault(f"Failed to read cache entry {key}: {e}") from e

    async def set(self, key: str, payload: str, ttl_seconds: Optional[int] = None):
        ttl = ttl_seconds or self.default_ttl_seconds
        try:
            client = await self._get_client()
            if ttl:
                await client.setex(key, ttl, payload)
            else:
                await client.set(key, payload)
        except redis.RedisError as e:
            raise CacheFault(f"Failed to write cache entry {key}: {e}") from e

    async def delete(self, key: str):
        try:
            client = await self._get_client()
            await client.delete(key)
        except redis.RedisError as e:
            raise CacheFault(f"Failed to delete cache entry {key}: {e}") from e

    async def clear(self) -> int:
        try:
            client = await self._get_client()
            removed = 0
            async for key in client.scan_iter(match=f"{self.key_prefix}*"):
                removed += await client.delete(key)
            app_logger.log_info(f"Cleared {removed} cached optimization results")
            return removed
        except redis.RedisError as e:
            raise CacheFault(f"Failed to clear cache: {e}") from e

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def build_result_cache(config: CacheConfig) -> ResultCache:
    """Cache backend selected by `cache.backend`"""
    if config.backend == 'redis':
        app_logger.log_info(f"Using Redis result cache at {config.redis_url}")
        return RedisResultCache(config.redis_url, config.key_prefix, config.ttl_seconds)
    if config.backend == 'none':
        return NullResultCache()
    return InMemoryResultCache(config.ttl_seconds)
