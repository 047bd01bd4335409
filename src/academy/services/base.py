"""Shared wiring for services that read through and invalidate the cache."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from dataclasses import dataclass

from academy.cache.collection import CollectionCache
from academy.cache.invalidation import InvalidationEngine, InvalidationReport
from academy.cache.record import RecordCache
from academy.cache.store import CacheStore
from academy.config import settings
from academy.errors import CacheUnavailableError
from academy.observability.metrics import record_cache_error

logger = logging.getLogger(__name__)


@dataclass
class CacheLayer:
    """The three cache components sharing one store."""

    records: RecordCache
    collections: CollectionCache
    invalidation: InvalidationEngine

    @classmethod
    def over(cls, store: CacheStore) -> CacheLayer:
        return cls(
            records=RecordCache(store, settings.cache_detail_ttl),
            collections=CollectionCache(store, settings.cache_listing_ttl),
            invalidation=InvalidationEngine(store, settings.cache_scan_batch_size),
        )


async def invalidate_after_commit(
    operation: Awaitable[InvalidationReport | int], description: str
) -> None:
    """Run a post-commit invalidation, tolerating an unreachable cache.

    The write has already committed; entries left behind expire by TTL.
    """
    try:
        await operation
    except CacheUnavailableError as e:
        logger.warning("Skipped invalidation of %s, cache unavailable: %s", description, e)
        record_cache_error(e.operation)
