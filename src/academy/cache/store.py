"""Cache store adapter.

``CacheStore`` is the narrow key-value contract the cache layer consumes.
``RedisCacheStore`` implements it over redis-py's asyncio client with an
explicit connect/disconnect lifecycle; it is created and injected by the
host rather than held as a module-level singleton.

Every redis-py failure is re-raised as ``CacheUnavailableError`` so callers
can degrade to the primary store with a single except clause.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Iterable
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, cast

import redis.asyncio as redis
from redis.exceptions import RedisError

from academy.config import settings
from academy.errors import CacheUnavailableError

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SCAN cursor that both starts and terminates an iteration
SCAN_COMPLETE = 0


class CacheStore(Protocol):
    """Key-value store with TTL, multi-get and cursor-based pattern scan."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: int) -> None: ...

    async def set_many(self, items: Iterable[tuple[str, str]], ttl: int) -> None: ...

    async def mget(self, keys: list[str]) -> list[str | None]: ...

    async def scan(self, cursor: int, pattern: str, count: int) -> tuple[int, list[str]]: ...

    async def delete(self, keys: list[str]) -> int: ...

    async def ping(self) -> bool: ...


class NullCacheStore:
    """Always-miss store used when caching is switched off."""

    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, value: str, ttl: int) -> None:
        return None

    async def set_many(self, items: Iterable[tuple[str, str]], ttl: int) -> None:
        return None

    async def mget(self, keys: list[str]) -> list[str | None]:
        return [None] * len(keys)

    async def scan(self, cursor: int, pattern: str, count: int) -> tuple[int, list[str]]:
        return SCAN_COMPLETE, []

    async def delete(self, keys: list[str]) -> int:
        return 0

    async def ping(self) -> bool:
        return True


def _await_redis(result: Awaitable[T] | T) -> Awaitable[T]:
    """Cast redis-py async results to an awaitable for mypy."""
    return cast(Awaitable[T], result)


class RedisCacheStore:
    """CacheStore backed by Redis.

    Usage:
        store = RedisCacheStore(settings.redis_url)
        await store.connect()
        try:
            ...
        finally:
            await store.disconnect()

    or as ``async with RedisCacheStore(url) as store: ...``.
    """

    def __init__(self, url: str | None = None, client: Redis | None = None):
        self.url = url or settings.redis_url
        self._client: Redis | None = client

    @property
    def client(self) -> Redis:
        if self._client is None:
            raise CacheUnavailableError("client", RuntimeError("cache store is not connected"))
        return self._client

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Create the connection pool."""
        if self._client is not None:
            return
        self._client = redis.from_url(  # type: ignore[no-untyped-call]
            self.url,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("Connected cache store")

    async def disconnect(self) -> None:
        """Close pooled connections."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected cache store")

    async def __aenter__(self) -> RedisCacheStore:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()

    # -------------------------------------------------------------------------
    # CacheStore
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        try:
            return cast(str | None, await self.client.get(key))
        except (RedisError, OSError) as e:
            raise CacheUnavailableError("get", e) from e

    async def set(self, key: str, value: str, ttl: int) -> None:
        try:
            await self.client.set(key, value, ex=ttl)
        except (RedisError, OSError) as e:
            raise CacheUnavailableError("set", e) from e

    async def set_many(self, items: Iterable[tuple[str, str]], ttl: int) -> None:
        """Write several keys with one round trip."""
        try:
            async with self.client.pipeline(transaction=False) as pipe:
                for key, value in items:
                    pipe.setex(key, ttl, value)
                await pipe.execute()
        except (RedisError, OSError) as e:
            raise CacheUnavailableError("set_many", e) from e

    async def mget(self, keys: list[str]) -> list[str | None]:
        if not keys:
            return []
        try:
            return cast(list[str | None], await self.client.mget(keys))
        except (RedisError, OSError) as e:
            raise CacheUnavailableError("mget", e) from e

    async def scan(self, cursor: int, pattern: str, count: int) -> tuple[int, list[str]]:
        try:
            next_cursor, keys = await self.client.scan(cursor=cursor, match=pattern, count=count)
        except (RedisError, OSError) as e:
            raise CacheUnavailableError("scan", e) from e
        return int(next_cursor), list(keys)

    async def delete(self, keys: list[str]) -> int:
        if not keys:
            return 0
        try:
            return int(await self.client.delete(*keys))
        except (RedisError, OSError) as e:
            raise CacheUnavailableError("delete", e) from e

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            await _await_redis(self.client.ping())
            return True
        except (RedisError, OSError, CacheUnavailableError):
            return False
