"""Cache layer for the academy core.

Cache-aside over Redis:
- RecordCache: per-record get/set/get-or-populate
- CollectionCache: paginated listings stored as id indexes over records
- InvalidationEngine: SCAN-based delete and merge-update after writes
"""

from academy.cache.collection import CollectionCache, Page, PageMeta
from academy.cache.invalidation import (
    DEPENDENCY_MAP,
    DependentPatterns,
    InvalidationEngine,
    InvalidationReport,
)
from academy.cache.keys import CacheKeys
from academy.cache.record import MISSING, CacheLookup, RecordCache
from academy.cache.store import SCAN_COMPLETE, CacheStore, RedisCacheStore

__all__ = [
    # Store
    "CacheStore",
    "RedisCacheStore",
    "SCAN_COMPLETE",
    "CacheKeys",
    # Read path
    "RecordCache",
    "CacheLookup",
    "MISSING",
    "CollectionCache",
    "Page",
    "PageMeta",
    # Write path
    "InvalidationEngine",
    "InvalidationReport",
    "DependentPatterns",
    "DEPENDENCY_MAP",
]
