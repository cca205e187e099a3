"""
Key-value store used by the scan cache and the scan rate limiter.

Both collaborators only depend on the narrow ``KeyValueStore`` interface so the
pipeline runs against Redis in production and an in-process dict in tests.
"""
import asyncio
import time
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Dict, Optional, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.platform.config import settings
from app.platform.exceptions import StoreUnavailableError
from app.platform.logger import get_logger

logger = get_logger(__name__)


class KeyValueStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def incr(self, key: str, ttl: Optional[int] = None) -> int:
        """Atomically increment ``key`` and return the new value."""


class InMemoryStore(KeyValueStore):
    def __init__(self):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = asyncio.Lock()

    def _read(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and time.time() >= expires_at:
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._read(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = time.time() + ttl if ttl else None
        async with self._lock:
            self._data[key] = (value, expires_at)

    async def incr(self, key: str, ttl: Optional[int] = None) -> int:
        async with self._lock:
            current = self._read(key)
            count = int(current or 0) + 1
            if current is None:
                expires_at = time.time() + ttl if ttl else None
            else:
                expires_at = self._data[key][1]
            self._data[key] = (str(count), expires_at)
            return count

    def clear(self) -> None:
        self._data.clear()


class RedisStore(KeyValueStore):
    def __init__(self, redis: Redis):
        self.redis = redis

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        return cls(Redis.from_url(url, encoding="utf-8", decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.redis.get(key)
        except RedisError as e:
            raise StoreUnavailableError(f"Redis GET failed for {key}: {e}") from e

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        try:
            await self.redis.set(key, value, ex=ttl)
        except RedisError as e:
            raise StoreUnavailableError(f"Redis SET failed for {key}: {e}") from e

    async def incr(self, key: str, ttl: Optional[int] = None) -> int:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                if ttl:
                    pipe.expire(key, ttl)
                results = await pipe.execute()
            return int(results[0])
        except RedisError as e:
            raise StoreUnavailableError(f"Redis INCR failed for {key}: {e}") from e


@lru_cache
def get_store() -> KeyValueStore:
    if settings.REDIS_URL and not settings.FORCE_IN_MEMORY_STORE:
        logger.info("Using Redis key-value store")
        return RedisStore.from_url(settings.REDIS_URL)
    logger.info("Using in-memory key-value store")
    return InMemoryStore()
