"""User reads and writes with cache-aside and post-commit invalidation.

Key families written here:
- users-{query}            listing index (CollectionCache)
- user-{id}-details        user document
- group-{id}-details       group document (hydrated for memberships)
- user-group-{uid}-{gid}   membership join embedding user and group fields
"""

from __future__ import annotations

from typing import Any

from academy.cache.collection import Page
from academy.cache.keys import CacheKeys
from academy.config import settings
from academy.errors import NotFoundError
from academy.persistence.query import ListQuery, paginate
from academy.persistence.repositories import DocumentStore
from academy.services.base import CacheLayer, invalidate_after_commit

USER = "user"
USERS = "users"
GROUP = "group"
SEARCH_FIELDS = ("fullName", "email")


class UserService:
    def __init__(
        self,
        users: DocumentStore,
        groups: DocumentStore,
        memberships: DocumentStore,
        cache: CacheLayer,
    ):
        self.users = users
        self.groups = groups
        self.memberships = memberships
        self.cache = cache

    async def _active_user(self, store: DocumentStore, user_id: str) -> dict[str, Any]:
        user = await store.get(user_id)
        if user.get("isDeleted"):
            raise NotFoundError(store.resource, user_id)
        return user

    async def list_users(self, params: dict[str, Any]) -> Page:
        """Paginated, searchable user listing (deleted users excluded)."""
        params = {**params, "isDeleted": False}
        query = ListQuery.from_params(params)
        return await self.cache.collections.read(
            USERS,
            params,
            lambda: paginate(self.users, query, SEARCH_FIELDS),
            entity=USER,
        )

    async def get_user(self, user_id: str) -> dict[str, Any]:
        return await self.cache.records.get_or_set(
            CacheKeys.details(USER, user_id),
            lambda: self._active_user(self.users, user_id),
            settings.cache_detail_ttl,
        )

    async def update_user(self, user_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """Apply ``changes`` and patch every cached copy of the user."""
        async with self.users.transaction() as tx:
            await self._active_user(tx, user_id)
            updated = await tx.update(user_id, changes)

        applied = {name: updated[name] for name in (*changes, "updatedAt") if name in updated}
        await invalidate_after_commit(
            self.cache.invalidation.patch_entity(USER, user_id, applied),
            f"{USER} {user_id}",
        )
        return updated

    async def delete_user(self, user_id: str) -> dict[str, Any]:
        """Soft-delete the user and evict every cached copy."""
        async with self.users.transaction() as tx:
            await self._active_user(tx, user_id)
            deleted = await tx.update(user_id, {"isDeleted": True, "isUserVerified": False})

        await invalidate_after_commit(
            self.cache.invalidation.evict_entity(USER, user_id),
            f"{USER} {user_id}",
        )
        return deleted

    async def get_user_groups(self, user_id: str) -> list[dict[str, Any]]:
        """Active groups the user belongs to, hydrated from group detail keys."""
        memberships = await self.memberships.find_many({"userId": user_id})
        group_ids = [m["groupId"] for m in memberships]
        if not group_ids:
            return []

        async def load_groups(ids: list[str]) -> list[dict[str, Any]]:
            return await self.groups.find_many({"id": ids, "isDeleted": False})

        return await self.cache.records.get_many_or_load(
            GROUP, group_ids, load_groups, settings.cache_detail_ttl
        )

    async def get_membership(self, user_id: str, group_id: str) -> dict[str, Any]:
        """Membership join record, cached under the pairwise relation key."""

        async def load() -> dict[str, Any]:
            found = await self.memberships.find_many({"userId": user_id, "groupId": group_id})
            if not found:
                raise NotFoundError("Membership", f"{user_id}/{group_id}")
            user = await self._active_user(self.users, user_id)
            group = await self.groups.get(group_id)
            return {
                "id": found[0]["id"],
                "userId": user_id,
                "groupId": group_id,
                "fullName": user["fullName"],
                "email": user["email"],
                "name": group["name"],
            }

        return await self.cache.records.get_or_set(
            CacheKeys.relation(USER, GROUP, user_id, group_id),
            load,
            settings.cache_detail_ttl,
        )
