"""Pattern-based cache invalidation.

Writers call into this module after their primary-store write has committed:

    async with contents.transaction() as tx:
        ...
    await invalidation.evict_entity("course_content", content_id)

Invalidating before the commit lets a concurrent reader repopulate the
cache from the old state.

Patterns are matched with SCAN (never KEYS), one batch per cursor step, so a
cancelled invalidation leaves at most some stale keys that expire by TTL.
Keys that vanish between SCAN and GET, or whose value is not a JSON object,
are skipped and counted rather than aborting the pattern.

Which patterns can hold a copy of an entity is a static table
(``DEPENDENCY_MAP``) and has to be kept in step with the key families the
services write.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import orjson

from academy.cache.keys import CacheKeys
from academy.cache.record import decode, encode
from academy.cache.store import SCAN_COMPLETE, CacheStore
from academy.config import settings
from academy.errors import CacheUnavailableError
from academy.observability.metrics import record_invalidation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependentPatterns:
    """Key families that may embed a copy of one entity.

    Templates are formatted with the glob-escaped ``id``.
    """

    # Keys holding the entity's own document (merge on update)
    records: tuple[str, ...]
    # Join records embedding some of the entity's fields (merge known fields only)
    relations: tuple[str, ...] = ()
    # Listing indexes whose membership or order may change (always evicted)
    collections: tuple[str, ...] = ()

    def record_patterns(self, identifier: str) -> list[str]:
        return _format(self.records, identifier)

    def relation_patterns(self, identifier: str) -> list[str]:
        return _format(self.relations, identifier)

    def all_patterns(self, identifier: str) -> list[str]:
        return (
            self.record_patterns(identifier)
            + self.relation_patterns(identifier)
            + list(self.collections)
        )


def _format(templates: tuple[str, ...], identifier: str) -> list[str]:
    escaped = CacheKeys.escape_glob(identifier)
    return [template.format(id=escaped) for template in templates]


DEPENDENCY_MAP: dict[str, DependentPatterns] = {
    "user": DependentPatterns(
        records=(CacheKeys.entity_pattern("user", "{id}"),),
        relations=(CacheKeys.relation_pattern("user", "group", "{id}"),),
        collections=(CacheKeys.collection_pattern("users"),),
    ),
    "group": DependentPatterns(
        records=(CacheKeys.entity_pattern("group", "{id}"),),
        relations=(CacheKeys.relation_target_pattern("user", "group", "{id}"),),
        collections=(CacheKeys.collection_pattern("groups"),),
    ),
    "course": DependentPatterns(
        records=(CacheKeys.entity_pattern("course", "{id}"),),
        collections=(CacheKeys.collection_pattern("courses"),),
    ),
    "course_content": DependentPatterns(
        records=(CacheKeys.entity_pattern("course_content", "{id}"),),
        collections=(CacheKeys.collection_pattern("course_contents"),),
    ),
    "quiz": DependentPatterns(
        records=(CacheKeys.entity_pattern("quiz", "{id}"),),
        collections=(CacheKeys.collection_pattern("quizzes"),),
    ),
}


@dataclass
class InvalidationReport:
    """Outcome of an entity-level invalidation."""

    matched: int = 0
    changed: int = 0
    skipped: int = 0
    patterns: list[str] = field(default_factory=list)

    def add(self, other: InvalidationReport) -> None:
        self.matched += other.matched
        self.changed += other.changed
        self.skipped += other.skipped
        self.patterns.extend(other.patterns)


class InvalidationEngine:
    """Deletes or merge-updates every cache key matching a glob."""

    def __init__(
        self,
        store: CacheStore,
        batch_size: int | None = None,
        dependencies: dict[str, DependentPatterns] | None = None,
    ):
        self.store = store
        self.batch_size = batch_size or settings.cache_scan_batch_size
        self.dependencies = dependencies if dependencies is not None else DEPENDENCY_MAP

    async def scan_keys(self, pattern: str) -> AsyncIterator[list[str]]:
        """Yield the matches of each SCAN step until the cursor wraps to 0.

        A step may legitimately return no keys while the cursor is not done.
        """
        cursor = SCAN_COMPLETE
        while True:
            cursor, keys = await self.store.scan(cursor, pattern, self.batch_size)
            if keys:
                yield keys
            if cursor == SCAN_COMPLETE:
                break

    async def delete_keys(self, keys: list[str]) -> int:
        """Evict exact keys without scanning."""
        deleted = await self.store.delete(keys)
        record_invalidation("delete", deleted)
        return deleted

    async def remove_by_pattern(self, pattern: str) -> int:
        """Delete every key matching ``pattern``; returns the number deleted."""
        return (await self._remove(pattern)).changed

    async def update_by_pattern(
        self, pattern: str, fields: dict[str, Any], ttl: int | None = None
    ) -> int:
        """Shallow-merge ``fields`` into every JSON object matching ``pattern``.

        Each merged key is re-stored with a fresh ``ttl``. Returns the number
        of keys actually updated.
        """
        return (await self._merge(pattern, fields, ttl or settings.cache_detail_ttl)).changed

    async def _remove(self, pattern: str) -> InvalidationReport:
        report = InvalidationReport(patterns=[pattern])
        async for keys in self.scan_keys(pattern):
            report.matched += len(keys)
            report.changed += await self.store.delete(keys)
        report.skipped = report.matched - report.changed
        record_invalidation("delete", report.changed)
        logger.debug("Removed %d keys matching %s", report.changed, pattern)
        return report

    async def _merge(
        self,
        pattern: str,
        fields: dict[str, Any],
        ttl: int,
        known_fields_only: bool = False,
    ) -> InvalidationReport:
        report = InvalidationReport(patterns=[pattern])
        async for keys in self.scan_keys(pattern):
            report.matched += len(keys)
            for key in keys:
                try:
                    merged = await self._merge_key(key, fields, ttl, known_fields_only)
                except CacheUnavailableError as exc:
                    # Per-key failure (e.g. WRONGTYPE); a dead store fails the next SCAN
                    logger.debug("Skipped %s during merge: %s", key, exc)
                    merged = False
                if merged:
                    report.changed += 1
                else:
                    report.skipped += 1
        record_invalidation("merge", report.changed)
        if report.skipped:
            logger.debug(
                "Merged %d keys matching %s, skipped %d",
                report.changed,
                pattern,
                report.skipped,
            )
        return report

    async def _merge_key(
        self,
        key: str,
        fields: dict[str, Any],
        ttl: int,
        known_fields_only: bool,
    ) -> bool:
        raw = await self.store.get(key)
        if raw is None:
            # Deleted between SCAN and GET
            return False
        try:
            current = decode(raw)
        except orjson.JSONDecodeError:
            return False
        if not isinstance(current, dict):
            return False
        patch = fields
        if known_fields_only:
            patch = {name: value for name, value in fields.items() if name in current}
        await self.store.set(key, encode({**current, **patch}), ttl)
        return True

    # -------------------------------------------------------------------------
    # Entity-level invalidation
    # -------------------------------------------------------------------------

    def _dependents(self, entity: str) -> DependentPatterns:
        try:
            return self.dependencies[entity]
        except KeyError:
            raise ValueError(f"No cache dependencies registered for entity '{entity}'") from None

    async def evict_entity(self, entity: str, identifier: str) -> InvalidationReport:
        """Remove every key family that may hold a copy of the entity."""
        report = InvalidationReport()
        for pattern in self._dependents(entity).all_patterns(identifier):
            report.add(await self._remove(pattern))
        return report

    async def patch_entity(
        self,
        entity: str,
        identifier: str,
        fields: dict[str, Any],
        ttl: int | None = None,
    ) -> InvalidationReport:
        """Merge changed fields into cached copies of the entity.

        Record keys take every field; relation keys only take fields they
        already embed. Listing indexes are evicted because a changed field
        may move the record in or out of a filtered or sorted listing.
        """
        dependents = self._dependents(entity)
        ttl = ttl or settings.cache_detail_ttl
        report = InvalidationReport()
        for pattern in dependents.record_patterns(identifier):
            report.add(await self._merge(pattern, fields, ttl))
        for pattern in dependents.relation_patterns(identifier):
            report.add(await self._merge(pattern, fields, ttl, known_fields_only=True))
        for pattern in dependents.collections:
            report.add(await self._remove(pattern))
        return report

    async def evict_collections(self, entity: str) -> InvalidationReport:
        """Remove every cached listing of an entity family."""
        report = InvalidationReport()
        for pattern in self._dependents(entity).collections:
            report.add(await self._remove(pattern))
        return report
