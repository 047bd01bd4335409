"""Listing queries.

Turns a raw query-string dict into a paginated primary-store read:

    {"page": 2, "limit": 20, "searchTerm": "ann", "sortBy": "fullName",
     "sortOrder": "asc", "role": "USER"}

Reserved keys control paging, sorting and search; every other key is an
equality filter. The raw dict is also what the collection cache key is
built from, so two requests with the same parameters share a cache entry.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from academy.cache.collection import Page, PageMeta
from academy.errors import BadRequestError
from academy.persistence.repositories import DocumentStore

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
DEFAULT_SORT_BY = "createdAt"
DEFAULT_SORT_ORDER = "desc"

RESERVED_KEYS = frozenset({"page", "limit", "sortBy", "sortOrder", "searchTerm", "fields"})


def _positive_int(params: dict[str, Any], name: str, default: int) -> int:
    raw = params.get(name, default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise BadRequestError(f"'{name}' must be an integer") from None
    if value < 1:
        raise BadRequestError(f"'{name}' must be at least 1")
    return value


@dataclass
class ListQuery:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    sort_by: str = DEFAULT_SORT_BY
    sort_order: str = DEFAULT_SORT_ORDER
    search_term: str | None = None
    filters: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> ListQuery:
        sort_order = str(params.get("sortOrder", DEFAULT_SORT_ORDER)).lower()
        if sort_order not in ("asc", "desc"):
            raise BadRequestError("'sortOrder' must be 'asc' or 'desc'")
        return cls(
            page=_positive_int(params, "page", DEFAULT_PAGE),
            limit=min(_positive_int(params, "limit", DEFAULT_LIMIT), MAX_LIMIT),
            sort_by=str(params.get("sortBy", DEFAULT_SORT_BY)),
            sort_order=sort_order,
            search_term=params.get("searchTerm") or None,
            filters={k: v for k, v in params.items() if k not in RESERVED_KEYS},
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


async def paginate(
    store: DocumentStore,
    query: ListQuery,
    search_fields: Sequence[str] = (),
) -> Page:
    """Run ``query`` against ``store`` and return one page plus metadata."""
    search = (query.search_term, search_fields) if query.search_term else None
    total = await store.count(query.filters, search=search)
    data = await store.find_many(
        query.filters,
        search=search,
        order_by=[(query.sort_by, query.sort_order)],
        limit=query.limit,
        offset=query.offset,
    )
    return Page(data=data, meta=PageMeta.build(query.page, query.limit, total))
