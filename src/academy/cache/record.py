"""Per-record cache-aside operations.

Values are JSON documents encoded with orjson. A cache miss is never a
not-found signal: ``get_or_set`` always consults the loader on a miss and
lets its errors (e.g. ``NotFoundError``) propagate untouched.

When the cache store is unavailable the record cache degrades: reads behave
as misses, writes are skipped, and the failure is logged and counted.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import orjson

from academy.cache.keys import CacheKeys
from academy.cache.store import CacheStore
from academy.config import settings
from academy.errors import CacheUnavailableError
from academy.observability.metrics import record_cache_error, record_cache_hit, record_cache_miss

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any]]
ManyLoader = Callable[[list[str]], Awaitable[list[dict[str, Any]]]]


class _Missing:
    """Marker for a key with no stored value (distinct from a stored null)."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


@dataclass
class CacheLookup:
    """One slot of a multi-get, aligned with the requested key."""

    key: str
    value: Any = MISSING

    @property
    def found(self) -> bool:
        return self.value is not MISSING


def encode(value: Any) -> str:
    return orjson.dumps(value).decode("utf-8")


def decode(raw: str | bytes) -> Any:
    return orjson.loads(raw)


class RecordCache:
    """get / set / get-or-populate over a CacheStore."""

    def __init__(self, store: CacheStore, default_ttl: int | None = None):
        self.store = store
        self.default_ttl = default_ttl if default_ttl is not None else settings.cache_detail_ttl

    def _degraded(self, error: CacheUnavailableError) -> None:
        logger.warning("Cache unavailable, falling through to primary store: %s", error)
        record_cache_error(error.operation)

    async def get(self, key: str) -> Any | None:
        """Return the decoded value, or None on a miss."""
        try:
            raw = await self.store.get(key)
        except CacheUnavailableError as e:
            self._degraded(e)
            return None
        if raw is None:
            return None
        return decode(raw)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            await self.store.set(key, encode(value), ttl or self.default_ttl)
        except CacheUnavailableError as e:
            self._degraded(e)

    async def delete(self, key: str) -> None:
        try:
            await self.store.delete([key])
        except CacheUnavailableError as e:
            self._degraded(e)

    async def get_or_set(
        self,
        key: str,
        loader: Loader,
        ttl: int | None = None,
        *,
        refresh: bool = False,
    ) -> Any:
        """Return the cached value, populating it from ``loader`` on a miss.

        With ``refresh=True`` the loader always runs and overwrites the entry.
        Concurrent misses may each run the loader; loaders are read-only.
        """
        if not refresh:
            try:
                raw = await self.store.get(key)
            except CacheUnavailableError as e:
                self._degraded(e)
                return await loader()
            if raw is not None:
                record_cache_hit("record")
                return decode(raw)
            record_cache_miss("record")

        value = await loader()
        await self.set(key, value, ttl)
        return value

    async def get_many(self, keys: Sequence[str]) -> list[CacheLookup]:
        """Multi-get aligned with ``keys``; absent slots hold ``MISSING``."""
        keys = list(keys)
        try:
            raws = await self.store.mget(keys)
        except CacheUnavailableError as e:
            self._degraded(e)
            return [CacheLookup(key) for key in keys]
        return [
            CacheLookup(key) if raw is None else CacheLookup(key, decode(raw))
            for key, raw in zip(keys, raws)
        ]

    async def get_many_or_load(
        self,
        entity: str,
        ids: Sequence[str],
        loader: ManyLoader,
        ttl: int | None = None,
    ) -> list[dict[str, Any]]:
        """Hydrate detail records for ``ids`` with one multi-get and one load.

        Missing ids are recovered from their detail keys, fetched with a
        single ``loader(missing_ids)`` call and written back. The result
        follows the order of ``ids``; ids the loader does not return are
        dropped.
        """
        lookups = await self.get_many([CacheKeys.details(entity, i) for i in ids])

        found: dict[str, dict[str, Any]] = {}
        missing_ids: list[str] = []
        for lookup in lookups:
            parsed = CacheKeys.parse_details(lookup.key)
            if parsed is None:
                continue
            _, identifier = parsed
            if lookup.found:
                found[identifier] = lookup.value
            else:
                missing_ids.append(identifier)

        if found:
            record_cache_hit("record")
        if missing_ids:
            record_cache_miss("record")
            loaded = await loader(missing_ids)
            writes = [(CacheKeys.details(entity, item["id"]), encode(item)) for item in loaded]
            try:
                await self.store.set_many(writes, ttl or self.default_ttl)
            except CacheUnavailableError as e:
                self._degraded(e)
            for item in loaded:
                found[str(item["id"])] = item

        return [found[i] for i in ids if i in found]
