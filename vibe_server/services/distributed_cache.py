"""
Distributed low-latency cache (tier 2).

RedisCache uses redis.asyncio; MemoryCache is the in-process stand-in for tests and
local runs. Keys are namespaced as music:{namespace}:{key}. Entries are stored as
CachedResolution JSON so expiry can be re-validated on every read, independently of
the backend TTL.
"""

import logging
import time
from typing import Dict, Optional, Protocol, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from recommender.errors import ConfigurationError

from ..models.resolution import CachedResolution

logger = logging.getLogger(__name__)

KEY_PREFIX = "music"

# Namespaces
AUDIO = "audio"
SEARCH = "search"
TRENDING = "trending"

DEFAULT_TTLS = {
    SEARCH: 3600,
    AUDIO: 6 * 3600,
    TRENDING: 12 * 3600,
}


def make_key(namespace: str, key: str) -> str:
    return f"{KEY_PREFIX}:{namespace}:{key}"


class DistributedCache(Protocol):
    async def get(self, namespace: str, key: str) -> Optional[CachedResolution]:
        ...

    async def set(
        self, namespace: str, key: str, entry: CachedResolution, ttl_seconds: Optional[int] = None
    ) -> None:
        ...

    async def delete(self, namespace: str, key: str) -> None:
        ...

    async def clear(self, namespace: Optional[str] = None) -> int:
        ...

    async def stats(self) -> Dict:
        ...


class RedisCache:
    """Redis-backed cache. Errors propagate so the caller can fall through to the next tier."""

    def __init__(self, url: Optional[str] = None, client: Optional[aioredis.Redis] = None):
        if client is None:
            if not url:
                raise ConfigurationError("REDIS_URL is not set")
            client = aioredis.from_url(url, decode_responses=True, socket_connect_timeout=2)
        self._client = client

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    async def get(self, namespace: str, key: str) -> Optional[CachedResolution]:
        raw = await self._client.get(make_key(namespace, key))
        if raw is None:
            return None
        return CachedResolution.model_validate_json(raw)

    async def set(
        self, namespace: str, key: str, entry: CachedResolution, ttl_seconds: Optional[int] = None
    ) -> None:
        ttl = ttl_seconds or DEFAULT_TTLS.get(namespace, 3600)
        await self._client.set(make_key(namespace, key), entry.model_dump_json(), ex=ttl)

    async def delete(self, namespace: str, key: str) -> None:
        await self._client.delete(make_key(namespace, key))

    async def clear(self, namespace: Optional[str] = None) -> int:
        pattern = make_key(namespace, "*") if namespace else f"{KEY_PREFIX}:*"
        removed = 0
        async for k in self._client.scan_iter(match=pattern, count=500):
            removed += await self._client.delete(k)
        return removed

    async def stats(self) -> Dict:
        info = await self._client.info(section="memory")
        return {
            "backend": "redis",
            "keys": await self._client.dbsize(),
            "used_memory": info.get("used_memory_human"),
        }

    async def close(self) -> None:
        await self._client.aclose()


class MemoryCache:
    """In-process cache with the same semantics (TTL via monotonic clock)."""

    def __init__(self):
        self._data: Dict[str, Tuple[float, str]] = {}
        self.writes = 0

    async def ping(self) -> bool:
        return True

    async def get(self, namespace: str, key: str) -> Optional[CachedResolution]:
        k = make_key(namespace, key)
        item = self._data.get(k)
        if item is None:
            return None
        deadline, raw = item
        if deadline <= time.monotonic():
            del self._data[k]
            return None
        return CachedResolution.model_validate_json(raw)

    async def set(
        self, namespace: str, key: str, entry: CachedResolution, ttl_seconds: Optional[int] = None
    ) -> None:
        ttl = ttl_seconds or DEFAULT_TTLS.get(namespace, 3600)
        self._data[make_key(namespace, key)] = (time.monotonic() + ttl, entry.model_dump_json())
        self.writes += 1

    async def delete(self, namespace: str, key: str) -> None:
        self._data.pop(make_key(namespace, key), None)

    async def clear(self, namespace: Optional[str] = None) -> int:
        prefix = make_key(namespace, "") if namespace else f"{KEY_PREFIX}:"
        doomed = [k for k in self._data if k.startswith(prefix)]
        for k in doomed:
            del self._data[k]
        return len(doomed)

    async def stats(self) -> Dict:
        return {"backend": "memory", "keys": len(self._data), "writes": self.writes}
