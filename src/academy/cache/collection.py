"""Collection (paginated listing) cache.

A listing is cached as an index document holding the ordered member ids and
the page metadata; the members themselves live under their detail keys so
that a write to one record can patch every listing that contains it.

    users-{"page":1}      -> {"ids": ["u1", "u2"], "meta": {...}}
    user-u1-details       -> {"id": "u1", ...}
    user-u2-details       -> {"id": "u2", ...}
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from academy.cache.keys import CacheKeys
from academy.cache.record import decode, encode
from academy.cache.store import CacheStore
from academy.config import settings
from academy.errors import CacheUnavailableError
from academy.observability.metrics import record_cache_error, record_cache_hit, record_cache_miss

logger = logging.getLogger(__name__)


@dataclass
class PageMeta:
    """Pagination metadata for a listing."""

    page: int = 1
    limit: int = 10
    total: int = 0
    total_pages: int = 0

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> PageMeta:
        total_pages = math.ceil(total / limit) if limit > 0 else 0
        return cls(page=page, limit=limit, total=total, total_pages=total_pages)

    def to_dict(self) -> dict[str, int]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PageMeta:
        return cls(
            page=data.get("page", 1),
            limit=data.get("limit", 10),
            total=data.get("total", 0),
            total_pages=data.get("totalPages", 0),
        )


@dataclass
class Page:
    """One page of a listing: records in result order plus metadata."""

    data: list[dict[str, Any]] = field(default_factory=list)
    meta: PageMeta = field(default_factory=PageMeta)

    @property
    def ids(self) -> list[str]:
        return [str(item["id"]) for item in self.data]

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data, "meta": self.meta.to_dict()}


PageLoader = Callable[[], Awaitable[Page]]


class CollectionCache:
    """Caches listing results as an id index materialized from detail keys."""

    def __init__(self, store: CacheStore, default_ttl: int | None = None):
        self.store = store
        self.default_ttl = default_ttl if default_ttl is not None else settings.cache_listing_ttl

    async def read(
        self,
        entity_plural: str,
        query: dict[str, Any] | str,
        loader: PageLoader,
        *,
        entity: str,
        ttl: int | None = None,
        refresh: bool = False,
    ) -> Page:
        """Return the listing for ``query``, populating the cache on a miss.

        Args:
            entity_plural: Family name used in the index key (``users``)
            query: Query dict or its serialized form
            loader: Runs the query against the primary store
            entity: Singular name used in detail keys (``user``)
            ttl: Expiration for the index and every member record
            refresh: Skip the lookup and repopulate unconditionally
        """
        key = CacheKeys.collection(entity_plural, query)

        if not refresh:
            try:
                cached = await self._read_index(key, entity)
            except CacheUnavailableError as e:
                logger.warning("Cache unavailable, reading %s from primary store: %s", key, e)
                record_cache_error(e.operation)
                return await loader()
            if cached is not None:
                record_cache_hit("collection")
                return cached
            record_cache_miss("collection")

        page = await loader()
        try:
            await self._populate(key, entity, page, ttl or self.default_ttl)
        except CacheUnavailableError as e:
            logger.warning("Cache unavailable, skipping population of %s: %s", key, e)
            record_cache_error(e.operation)
        return page

    async def _read_index(self, key: str, entity: str) -> Page | None:
        raw = await self.store.get(key)
        if raw is None:
            return None
        index = decode(raw)
        ids: list[str] = index.get("ids", [])
        members = await self.store.mget([CacheKeys.details(entity, i) for i in ids])
        # Members evicted since population are dropped rather than re-fetched
        data = [decode(member) for member in members if member is not None]
        if len(data) != len(ids):
            logger.debug("Listing %s served with %d of %d members", key, len(data), len(ids))
        return Page(data=data, meta=PageMeta.from_dict(index.get("meta", {})))

    async def _populate(self, key: str, entity: str, page: Page, ttl: int) -> None:
        # Empty results are cached too, so a known-empty query stays off the store
        await self.store.set(key, encode({"ids": page.ids, "meta": page.meta.to_dict()}), ttl)
        if page.data:
            await self.store.set_many(
                [(CacheKeys.details(entity, str(item["id"])), encode(item)) for item in page.data],
                ttl,
            )
