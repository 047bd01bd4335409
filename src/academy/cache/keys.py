"""Cache key schema.

Key formats (shared with other services reading the same Redis, so they are
reproduced exactly):
- detail:     {entity}-{id}-details          e.g. user-abc123-details
- collection: {entityPlural}-{queryJSON}     e.g. groups-{"page":1}
- relation:   {entityA}-{entityB}-{idA}-{idB} e.g. user-group-u1-g2

Entity names must not contain "-": the id of a detail key is recovered by
splitting on the first separator. Ids placed in SCAN patterns are escaped, so
an id holding glob characters only matches itself.
"""

from __future__ import annotations

import re
from typing import Any

import orjson

SEPARATOR = "-"
DETAILS_SUFFIX = "-details"

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class CacheKeys:
    """Cache key generator following the shared naming convention."""

    @classmethod
    def details(cls, entity: str, identifier: str) -> str:
        """Key for a single entity record."""
        return f"{entity}-{identifier}-details"

    @classmethod
    def serialize_query(cls, query: dict[str, Any]) -> str:
        """Compact JSON in insertion order, matching JSON.stringify."""
        return orjson.dumps(query).decode("utf-8")

    @classmethod
    def collection(cls, entity_plural: str, query: dict[str, Any] | str) -> str:
        """Key for a cached collection index.

        Accepts either the raw query dict or an already serialized query.
        """
        serialized = query if isinstance(query, str) else cls.serialize_query(query)
        return f"{entity_plural}-{serialized}"

    @classmethod
    def relation(cls, entity_a: str, entity_b: str, id_a: str, id_b: str) -> str:
        """Key for a pairwise relation record (e.g. group membership)."""
        return f"{entity_a}-{entity_b}-{id_a}-{id_b}"

    @classmethod
    def parse_details(cls, key: str) -> tuple[str, str] | None:
        """Split a detail key into (entity, id).

        Returns None if the key doesn't match the detail format.
        """
        if not key.endswith(DETAILS_SUFFIX):
            return None
        entity, sep, identifier = key[: -len(DETAILS_SUFFIX)].partition(SEPARATOR)
        if not sep or not entity or not identifier:
            return None
        return (entity, identifier)

    # -------------------------------------------------------------------------
    # Glob patterns for SCAN-based invalidation
    # -------------------------------------------------------------------------

    @classmethod
    def escape_glob(cls, value: str) -> str:
        """Backslash-escape Redis glob characters in ``value``."""
        return _GLOB_SPECIAL.sub(r"\\\1", value)

    @classmethod
    def entity_pattern(cls, entity: str, identifier: str) -> str:
        """Every key scoped to one entity (detail key included)."""
        return f"{entity}-{cls.escape_glob(identifier)}-*"

    @classmethod
    def collection_pattern(cls, entity_plural: str) -> str:
        """Every cached collection index of an entity family."""
        return f"{entity_plural}-*"

    @classmethod
    def relation_pattern(cls, entity_a: str, entity_b: str, id_a: str) -> str:
        """Every relation record whose left side is ``id_a``."""
        return f"{entity_a}-{entity_b}-{cls.escape_glob(id_a)}-*"

    @classmethod
    def relation_target_pattern(cls, entity_a: str, entity_b: str, id_b: str) -> str:
        """Every relation record whose right side is ``id_b``."""
        return f"{entity_a}-{entity_b}-*-{cls.escape_glob(id_b)}"
