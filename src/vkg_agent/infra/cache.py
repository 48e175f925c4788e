"""
Key-value cache for ontology schema, mappings, catalog metadata and engine config.

Two backends share one async interface:
- RedisCache: shared across processes, survives restarts
- InMemoryCache: per-process, used in tests and single-node setups

Values are JSON-serialized so both backends store the same shapes.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

from loguru import logger


class KeyValueCache(Protocol):
    """Get/set-with-expiry cache plus the hash operations the catalog registry needs."""

    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def hget(self, key: str, field_name: str) -> Optional[Any]: ...

    async def hset(self, key: str, field_name: str, value: Any) -> None: ...

    async def hgetall(self, key: str) -> Dict[str, Any]: ...

    async def hdel(self, key: str, field_name: str) -> None: ...

    async def close(self) -> None: ...


def _loads(raw: Optional[str]) -> Optional[Any]:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Discarding undecodable cache value: {str(raw)[:80]}")
        return None


@dataclass(frozen=True)
class CacheEntry:
    """A cached value with its expiry metadata."""
    value: str
    created_at: float
    ttl_seconds: Optional[float] = None

    @property
    def is_expired(self) -> bool:
        if self.ttl_seconds is None:
            return False
        return time.time() > self.created_at + self.ttl_seconds


@dataclass
class InMemoryCache:
    """
    In-process cache with TTL expiration.

    Stores JSON text rather than live objects so callers never share
    mutable state through the cache.
    """
    _store: Dict[str, CacheEntry] = field(default_factory=dict, init=False)
    _hashes: Dict[str, Dict[str, str]] = field(default_factory=dict, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    async def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired:
            async with self._lock:
                self._store.pop(key, None)
            return None
        return _loads(entry.value)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        async with self._lock:
            self._store[key] = CacheEntry(
                value=json.dumps(value, default=str),
                created_at=time.time(),
                ttl_seconds=ttl,
            )

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._store.pop(key, None)
            self._hashes.pop(key, None)

    async def hget(self, key: str, field_name: str) -> Optional[Any]:
        return _loads(self._hashes.get(key, {}).get(field_name))

    async def hset(self, key: str, field_name: str, value: Any) -> None:
        async with self._lock:
            self._hashes.setdefault(key, {})[field_name] = json.dumps(value, default=str)

    async def hgetall(self, key: str) -> Dict[str, Any]:
        raw = dict(self._hashes.get(key, {}))
        return {name: _loads(value) for name, value in raw.items()}

    async def hdel(self, key: str, field_name: str) -> None:
        async with self._lock:
            self._hashes.get(key, {}).pop(field_name, None)

    async def close(self) -> None:
        self._store.clear()
        self._hashes.clear()


class RedisCache:
    """
    Redis-backed cache.

    Key format: {prefix}{key}
    Redis failures are logged and treated as cache misses; the pipeline
    recomputes from the source stores instead of failing the request.
    """

    def __init__(self, url: str, prefix: str = ""):
        self.url = url
        self.prefix = prefix
        self._client = None

    async def connect(self) -> bool:
        """Connect to Redis. Returns True if successful."""
        import redis.asyncio as redis

        try:
            self._client = redis.from_url(self.url, decode_responses=True)
            await self._client.ping()
            logger.info(f"✅ Connected to Redis at {self.url}")
            return True
        except Exception as e:
            logger.error(f"Failed to connect to Redis at {self.url}: {e}")
            return False

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        if self._client is None:
            return None
        try:
            return _loads(await self._client.get(self._key(key)))
        except Exception as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if self._client is None:
            return
        try:
            await self._client.set(self._key(key), json.dumps(value, default=str), ex=ttl)
        except Exception as e:
            logger.warning(f"Redis set failed for {key}: {e}")

    async def delete(self, key: str) -> None:
        if self._client is None:
            return
        try:
            await self._client.delete(self._key(key))
        except Exception as e:
            logger.warning(f"Redis delete failed for {key}: {e}")

    async def hget(self, key: str, field_name: str) -> Optional[Any]:
        if self._client is None:
            return None
        try:
            return _loads(await self._client.hget(self._key(key), field_name))
        except Exception as e:
            logger.warning(f"Redis hget failed for {key}/{field_name}: {e}")
            return None

    async def hset(self, key: str, field_name: str, value: Any) -> None:
        if self._client is None:
            return
        try:
            await self._client.hset(self._key(key), field_name, json.dumps(value, default=str))
        except Exception as e:
            logger.warning(f"Redis hset failed for {key}/{field_name}: {e}")

    async def hgetall(self, key: str) -> Dict[str, Any]:
        if self._client is None:
            return {}
        try:
            raw = await self._client.hgetall(self._key(key))
        except Exception as e:
            logger.warning(f"Redis hgetall failed for {key}: {e}")
            return {}
        return {name: _loads(value) for name, value in raw.items()}

    async def hdel(self, key: str, field_name: str) -> None:
        if self._client is None:
            return
        try:
            await self._client.hdel(self._key(key), field_name)
        except Exception as e:
            logger.warning(f"Redis hdel failed for {key}/{field_name}: {e}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")


async def create_cache(settings) -> KeyValueCache:
    """
    Build the configured cache backend.

    Falls back to the in-memory backend when Redis cannot be reached so the
    service still answers queries (each process then keeps its own cache).
    """
    backend = settings.cache_backend.lower()
    if backend == "memory":
        logger.info("Using in-memory cache")
        return InMemoryCache()

    if backend != "redis":
        logger.warning(f"Unknown cache backend '{settings.cache_backend}', using in-memory cache")
        return InMemoryCache()

    cache = RedisCache(settings.redis_url, prefix=settings.redis_key_prefix)
    if await cache.connect():
        return cache
    logger.warning("⚠️  Redis unavailable, falling back to in-memory cache")
    return InMemoryCache()
