"""Course contents and quizzes: ordered, cached, invalidated after commit.

Both resources follow the same shape, so ``OrderedResource`` carries the
read-through and invalidation logic for one sequencer and
``CourseContentService`` exposes the two of them.

Every reorder evicts the moved item's key family and the resource's
listings, then drops the detail keys of siblings whose index shifted.
"""

from __future__ import annotations

from typing import Any

from academy.cache.collection import Page, PageMeta
from academy.cache.keys import CacheKeys
from academy.config import settings
from academy.ordering.base import Reorder
from academy.ordering.sequencer import Sequencer
from academy.services.base import CacheLayer, invalidate_after_commit


class OrderedResource:
    """Cached view and write path for one ordered entity."""

    def __init__(
        self,
        sequencer: Sequencer,
        cache: CacheLayer,
        *,
        entity: str,
        entity_plural: str,
        scope_field: str,
    ):
        self.sequencer = sequencer
        self.cache = cache
        self.entity = entity
        self.entity_plural = entity_plural
        self.scope_field = scope_field

    async def list_items(self, scope_id: str) -> Page:
        """Active items of the scope in index order."""

        async def load() -> Page:
            items = [item.to_dict() for item in await self.sequencer.list_active(scope_id)]
            return Page(data=items, meta=PageMeta.build(1, len(items), len(items)))

        return await self.cache.collections.read(
            self.entity_plural,
            {self.scope_field: scope_id},
            load,
            entity=self.entity,
        )

    async def get(self, item_id: str) -> dict[str, Any]:
        async def load() -> dict[str, Any]:
            return (await self.sequencer.get(item_id)).to_dict()

        return await self.cache.records.get_or_set(
            CacheKeys.details(self.entity, item_id), load, settings.cache_detail_ttl
        )

    async def add(self, scope_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return await self._after_write(await self.sequencer.insert_at_end(scope_id, data))

    async def add_many(self, scope_id: str, items: list[dict[str, Any]]) -> list[dict[str, Any]]:
        created = await self.sequencer.insert_many_at_end(scope_id, items)
        await invalidate_after_commit(
            self.cache.invalidation.evict_collections(self.entity),
            f"{self.entity_plural} listings",
        )
        return [result.item.to_dict() for result in created]

    async def move(self, item_id: str, new_index: int) -> dict[str, Any]:
        return await self._after_write(await self.sequencer.move_to(item_id, new_index))

    async def toggle(self, item_id: str) -> dict[str, Any]:
        return await self._after_write(await self.sequencer.toggle_delete(item_id))

    async def compact(self, scope_id: str) -> list[dict[str, Any]]:
        changed = await self.sequencer.compact(scope_id)
        for result in changed:
            await self._after_write(result)
        return [result.item.to_dict() for result in changed]

    async def _after_write(self, result: Reorder) -> dict[str, Any]:
        invalidation = self.cache.invalidation
        await invalidate_after_commit(
            invalidation.evict_entity(self.entity, result.item.id),
            f"{self.entity} {result.item.id}",
        )
        if result.shifted:
            await invalidate_after_commit(
                invalidation.delete_keys(
                    [CacheKeys.details(self.entity, i) for i in result.shifted]
                ),
                f"{len(result.shifted)} shifted {self.entity_plural}",
            )
        return result.item.to_dict()


class CourseContentService:
    """Ordered contents per course and ordered quizzes per content."""

    def __init__(self, contents: Sequencer, quizzes: Sequencer, cache: CacheLayer):
        self.contents = OrderedResource(
            contents,
            cache,
            entity="course_content",
            entity_plural="course_contents",
            scope_field="courseId",
        )
        self.quizzes = OrderedResource(
            quizzes,
            cache,
            entity="quiz",
            entity_plural="quizzes",
            scope_field="courseContentId",
        )

    # Contents

    async def list_contents(self, course_id: str) -> Page:
        return await self.contents.list_items(course_id)

    async def get_content(self, content_id: str) -> dict[str, Any]:
        return await self.contents.get(content_id)

    async def add_content(self, course_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return await self.contents.add(course_id, data)

    async def move_content(self, content_id: str, new_index: int) -> dict[str, Any]:
        return await self.contents.move(content_id, new_index)

    async def toggle_content(self, content_id: str) -> dict[str, Any]:
        return await self.contents.toggle(content_id)

    # Quizzes

    async def list_quizzes(self, content_id: str) -> Page:
        return await self.quizzes.list_items(content_id)

    async def get_quiz(self, quiz_id: str) -> dict[str, Any]:
        return await self.quizzes.get(quiz_id)

    async def add_quiz(self, content_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return await self.quizzes.add(content_id, data)

    async def add_quizzes(
        self, content_id: str, quizzes: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Append several quizzes in one transaction, in the given order."""
        return await self.quizzes.add_many(content_id, quizzes)

    async def move_quiz(self, quiz_id: str, new_index: int) -> dict[str, Any]:
        return await self.quizzes.move(quiz_id, new_index)

    async def toggle_quiz(self, quiz_id: str) -> dict[str, Any]:
        return await self.quizzes.toggle(quiz_id)

    async def compact_quizzes(self, content_id: str) -> list[dict[str, Any]]:
        return await self.quizzes.compact(content_id)

    async def compact_contents(self, course_id: str) -> list[dict[str, Any]]:
        return await self.contents.compact(course_id)
