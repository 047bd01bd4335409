"""Types shared by the sequencer and its stores."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncContextManager, Protocol


@dataclass
class OrderedItem:
    """A row with an explicit position inside its parent scope.

    ``index`` is None while the item is deleted.
    """

    id: str
    scope_id: str
    index: int | None
    is_deleted: bool = False
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {**self.data, "id": self.id, "index": self.index, "isDeleted": self.is_deleted}


@dataclass
class Reorder:
    """Result of a sequencer operation.

    ``shifted`` lists the siblings whose index changed as a side effect.
    """

    item: OrderedItem
    shifted: list[str] = field(default_factory=list)

    @property
    def index(self) -> int | None:
        return self.item.index


class OrderedTransaction(Protocol):
    """Reads and writes on one ordered table inside an open transaction."""

    async def get(self, item_id: str) -> OrderedItem | None: ...

    async def lock_scope(self, scope_id: str) -> None: ...

    async def count_active(self, scope_id: str) -> int: ...

    async def list_active(self, scope_id: str) -> list[OrderedItem]: ...

    async def shift(self, scope_id: str, start: int, end: int | None, delta: int) -> list[str]:
        """Add ``delta`` to every active index in ``[start, end]``.

        ``end=None`` leaves the range open. Returns the ids shifted.
        """
        ...

    async def place(self, item_id: str, index: int | None, is_deleted: bool) -> OrderedItem: ...

    async def insert(self, scope_id: str, index: int, data: dict[str, Any]) -> OrderedItem: ...


class OrderedStore(Protocol):
    """Ordered table whose transaction either fully commits or not at all."""

    resource: str

    def transaction(self) -> AsyncContextManager[OrderedTransaction]: ...
