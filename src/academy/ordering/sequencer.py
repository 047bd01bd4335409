"""Dense ordering of sibling items.

For every parent scope (a course's contents, a content's quizzes) the active
items hold exactly the indices 1..N. Each operation below reads, validates
and writes inside one store transaction, so a failed or rejected operation
leaves no partial shift behind:

    insert_at_end  ACTIVE at N+1
    move_to        shift the range between old and new position by one
    soft_delete    ACTIVE -> DELETED (index None), close the gap
    restore        DELETED -> ACTIVE at N+1

The scope's active rows are locked before they are read, so two reorders
of the same scope run one after the other when the store supports row
locks. Different scopes never contend.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from academy.errors import IndexOutOfRangeError, NotFoundError
from academy.observability.logging import LogContext
from academy.observability.metrics import record_reorder
from academy.ordering.base import OrderedItem, OrderedStore, OrderedTransaction, Reorder

logger = logging.getLogger(__name__)


class Sequencer:
    """Maintains 1..N ordering for one ordered store."""

    def __init__(self, store: OrderedStore):
        self.store = store

    @property
    def resource(self) -> str:
        return self.store.resource

    async def _require(self, tx: OrderedTransaction, item_id: str) -> OrderedItem:
        item = await tx.get(item_id)
        if item is None:
            raise NotFoundError(self.resource, item_id)
        return item

    async def _lock_and_reload(self, tx: OrderedTransaction, item_id: str) -> OrderedItem:
        # The scope is unknown until the item is read; re-read once it is locked
        item = await self._require(tx, item_id)
        await tx.lock_scope(item.scope_id)
        return await self._require(tx, item_id)

    async def get(self, item_id: str) -> OrderedItem:
        async with self.store.transaction() as tx:
            return await self._require(tx, item_id)

    async def list_active(self, scope_id: str) -> list[OrderedItem]:
        """Active items of a scope ordered by index."""
        async with self.store.transaction() as tx:
            return await tx.list_active(scope_id)

    async def insert_at_end(self, scope_id: str, data: dict[str, Any]) -> Reorder:
        """Create an item at index N+1."""
        return (await self.insert_many_at_end(scope_id, [data]))[0]

    async def insert_many_at_end(
        self, scope_id: str, items: Sequence[dict[str, Any]]
    ) -> list[Reorder]:
        """Append several items, in the given order, in one transaction."""
        async with self.store.transaction() as tx:
            await tx.lock_scope(scope_id)
            total = await tx.count_active(scope_id)
            created = [
                Reorder(await tx.insert(scope_id, total + offset, data))
                for offset, data in enumerate(items, start=1)
            ]
        record_reorder("insert")
        logger.debug("Appended %d %s items to %s", len(created), self.resource, scope_id)
        return created

    async def move_to(self, item_id: str, new_index: int) -> Reorder:
        """Move an active item to ``new_index`` (1-based).

        Raises IndexOutOfRangeError when ``new_index`` is not in 1..N and
        NotFoundError when the item does not exist or is deleted.
        """
        async with self.store.transaction() as tx:
            item = await self._lock_and_reload(tx, item_id)
            if item.is_deleted or item.index is None:
                raise NotFoundError(self.resource, item_id)

            total = await tx.count_active(item.scope_id)
            if not 1 <= new_index <= total:
                raise IndexOutOfRangeError(new_index, total)

            current = item.index
            if current == new_index:
                return Reorder(item)

            with LogContext(scope_id=item.scope_id):
                if current < new_index:
                    shifted = await tx.shift(item.scope_id, current + 1, new_index, -1)
                else:
                    shifted = await tx.shift(item.scope_id, new_index, current - 1, 1)
                moved = await tx.place(item_id, new_index, is_deleted=False)
                logger.debug(
                    "Moved %s %s from %d to %d", self.resource, item_id, current, new_index
                )

        record_reorder("move")
        return Reorder(moved, [i for i in shifted if i != item_id])

    async def soft_delete(self, item_id: str) -> Reorder:
        """Mark an item deleted and close the gap it leaves.

        Deleting an already deleted item is a no-op.
        """
        async with self.store.transaction() as tx:
            item = await self._lock_and_reload(tx, item_id)
            if item.is_deleted:
                return Reorder(item)

            deleted = await tx.place(item_id, None, is_deleted=True)
            shifted: list[str] = []
            if item.index is not None:
                shifted = await tx.shift(item.scope_id, item.index + 1, None, -1)

        record_reorder("delete")
        logger.debug("Deleted %s %s, compacted %d siblings", self.resource, item_id, len(shifted))
        return Reorder(deleted, shifted)

    async def restore(self, item_id: str) -> Reorder:
        """Reactivate a deleted item at the end of its scope.

        Restoring an active item is a no-op.
        """
        async with self.store.transaction() as tx:
            item = await self._lock_and_reload(tx, item_id)
            if not item.is_deleted:
                return Reorder(item)

            total = await tx.count_active(item.scope_id)
            restored = await tx.place(item_id, total + 1, is_deleted=False)

        record_reorder("restore")
        logger.debug("Restored %s %s at %d", self.resource, item_id, restored.index)
        return Reorder(restored)

    async def toggle_delete(self, item_id: str) -> Reorder:
        """Delete an active item or restore a deleted one."""
        async with self.store.transaction() as tx:
            item = await self._require(tx, item_id)
        if item.is_deleted:
            return await self.restore(item_id)
        return await self.soft_delete(item_id)

    async def compact(self, scope_id: str) -> list[Reorder]:
        """Renumber active items to 1..N keeping their relative order.

        Repairs a scope whose indices drifted (duplicates or gaps). Items
        whose index is already right are left untouched.
        """
        changed: list[Reorder] = []
        async with self.store.transaction() as tx:
            await tx.lock_scope(scope_id)
            for position, item in enumerate(await tx.list_active(scope_id), start=1):
                if item.index != position:
                    changed.append(Reorder(await tx.place(item.id, position, is_deleted=False)))

        if changed:
            record_reorder("compact")
            logger.info("Compacted %d %s items in %s", len(changed), self.resource, scope_id)
        return changed
