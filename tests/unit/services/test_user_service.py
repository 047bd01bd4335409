"""Tests for the user service's cache-aside reads and post-commit invalidation."""

from __future__ import annotations

import orjson
import pytest

from academy.cache.keys import CacheKeys
from academy.errors import BadRequestError, NotFoundError
from academy.services.base import CacheLayer
from academy.services.users import UserService
from tests.fakes import InMemoryCacheStore, InMemoryDocumentStore

USERS = [
    {
        "id": "u1",
        "fullName": "Ada Lovelace",
        "email": "ada@example.com",
        "role": "ADMIN",
        "isUserVerified": True,
        "isDeleted": False,
        "createdAt": "2024-01-01T00:00:00",
    },
    {
        "id": "u2",
        "fullName": "Bob Stone",
        "email": "bob@example.com",
        "role": "USER",
        "isUserVerified": True,
        "isDeleted": False,
        "createdAt": "2024-01-02T00:00:00",
    },
    {
        "id": "u3",
        "fullName": "Gone User",
        "email": "gone@example.com",
        "role": "USER",
        "isUserVerified": False,
        "isDeleted": True,
        "createdAt": "2024-01-03T00:00:00",
    },
]

GROUPS = [
    {"id": "g1", "name": "Admins", "isDeleted": False},
    {"id": "g2", "name": "Readers", "isDeleted": False},
    {"id": "g3", "name": "Archived", "isDeleted": True},
]

MEMBERSHIPS = [
    {"id": "m1", "userId": "u1", "groupId": "g1"},
    {"id": "m2", "userId": "u1", "groupId": "g2"},
    {"id": "m3", "userId": "u1", "groupId": "g3"},
]


class CommitCheckingStore(InMemoryCacheStore):
    """Records the primary-store state seen by each invalidation scan."""

    def __init__(self, users: InMemoryDocumentStore) -> None:
        super().__init__()
        self.users = users
        self.seen: list[dict] = []

    async def scan(self, cursor: int, pattern: str, count: int) -> tuple[int, list[str]]:
        self.seen.append(dict(self.users.docs["u1"]))
        return await super().scan(cursor, pattern, count)


@pytest.fixture
def users() -> InMemoryDocumentStore:
    return InMemoryDocumentStore("User", USERS)


@pytest.fixture
def groups() -> InMemoryDocumentStore:
    return InMemoryDocumentStore("Group", GROUPS)


@pytest.fixture
def memberships() -> InMemoryDocumentStore:
    return InMemoryDocumentStore("Membership", MEMBERSHIPS)


@pytest.fixture
def cache_store(users: InMemoryDocumentStore) -> CommitCheckingStore:
    return CommitCheckingStore(users)


@pytest.fixture
def service(
    users: InMemoryDocumentStore,
    groups: InMemoryDocumentStore,
    memberships: InMemoryDocumentStore,
    cache_store: CommitCheckingStore,
) -> UserService:
    return UserService(users, groups, memberships, CacheLayer.over(cache_store))


class TestUserReads:
    """Tests for cached user reads."""

    @pytest.mark.asyncio
    async def test_get_user_is_cached(
        self, service: UserService, users: InMemoryDocumentStore, cache_store: CommitCheckingStore
    ) -> None:
        """The second read is served from the detail key."""
        first = await service.get_user("u1")
        reads = users.reads
        second = await service.get_user("u1")

        assert first == second
        assert users.reads == reads
        assert CacheKeys.details("user", "u1") in cache_store.data

    @pytest.mark.asyncio
    async def test_get_deleted_user(self, service: UserService, cache_store: CommitCheckingStore) -> None:
        """A deleted user is not found and nothing is cached."""
        with pytest.raises(NotFoundError):
            await service.get_user("u3")

        assert CacheKeys.details("user", "u3") not in cache_store.data

    @pytest.mark.asyncio
    async def test_list_users_excludes_deleted(self, service: UserService) -> None:
        """Listings never contain deleted users."""
        page = await service.list_users({"page": 1, "limit": 10})

        assert set(page.ids) == {"u1", "u2"}
        assert page.meta.total == 2

    @pytest.mark.asyncio
    async def test_list_users_search_and_sort(self, service: UserService) -> None:
        """searchTerm matches name or email, sorting follows sortBy."""
        page = await service.list_users({"searchTerm": "example", "sortBy": "fullName", "sortOrder": "asc"})

        assert page.ids == ["u1", "u2"]

        found = await service.list_users({"searchTerm": "BOB"})
        assert found.ids == ["u2"]

    @pytest.mark.asyncio
    async def test_list_users_is_cached(
        self, service: UserService, users: InMemoryDocumentStore, cache_store: CommitCheckingStore
    ) -> None:
        """Repeating a listing doesn't hit the primary store."""
        await service.list_users({"page": 1})
        reads = users.reads

        page = await service.list_users({"page": 1})

        assert users.reads == reads
        assert page.meta.total == 2
        key = CacheKeys.collection("users", {"page": 1, "isDeleted": False})
        assert key in cache_store.data

    @pytest.mark.asyncio
    async def test_list_users_rejects_bad_params(self, service: UserService) -> None:
        """Invalid paging is a bad request."""
        with pytest.raises(BadRequestError):
            await service.list_users({"page": "zero"})

    @pytest.mark.asyncio
    async def test_get_user_groups(
        self, service: UserService, groups: InMemoryDocumentStore, cache_store: CommitCheckingStore
    ) -> None:
        """Active groups are hydrated and cached; deleted groups are dropped."""
        first = await service.get_user_groups("u1")
        second = await service.get_user_groups("u1")

        assert [g["id"] for g in first] == ["g1", "g2"]
        assert second == first
        assert CacheKeys.details("group", "g1") in cache_store.data
        assert CacheKeys.details("group", "g3") not in cache_store.data

    @pytest.mark.asyncio
    async def test_cached_groups_skip_primary_store(
        self, service: UserService, groups: InMemoryDocumentStore, cache_store: CommitCheckingStore
    ) -> None:
        """Groups already cached are not loaded again."""
        await service.get_user_groups("u1")
        await service.get_user_groups("u1")
        groups.docs["g1"]["name"] = "Renamed in primary"

        result = await service.get_user_groups("u1")

        assert result[0]["name"] == "Admins"

    @pytest.mark.asyncio
    async def test_get_user_groups_without_memberships(self, service: UserService) -> None:
        """A user in no group gets an empty list."""
        assert await service.get_user_groups("u2") == []

    @pytest.mark.asyncio
    async def test_get_membership(self, service: UserService, cache_store: CommitCheckingStore) -> None:
        """The membership join embeds user and group fields under the relation key."""
        membership = await service.get_membership("u1", "g1")

        assert membership == {
            "id": "m1",
            "userId": "u1",
            "groupId": "g1",
            "fullName": "Ada Lovelace",
            "email": "ada@example.com",
            "name": "Admins",
        }
        assert "user-group-u1-g1" in cache_store.data

    @pytest.mark.asyncio
    async def test_get_missing_membership(self, service: UserService) -> None:
        """A pair without a membership is not found."""
        with pytest.raises(NotFoundError):
            await service.get_membership("u2", "g1")


class TestUserWrites:
    """Tests for writes and the invalidation that follows them."""

    @pytest.mark.asyncio
    async def test_update_patches_cached_copies(
        self, service: UserService, cache_store: CommitCheckingStore
    ) -> None:
        """Detail and membership copies see the new name; listings are evicted."""
        await service.get_user("u1")
        await service.get_membership("u1", "g1")
        await service.list_users({"page": 1})

        await service.update_user("u1", {"fullName": "Ada King"})

        assert (await service.get_user("u1"))["fullName"] == "Ada King"
        membership = orjson.loads(cache_store.data["user-group-u1-g1"])
        assert membership["fullName"] == "Ada King"
        assert not any(key.startswith("users-") for key in cache_store.data)

    @pytest.mark.asyncio
    async def test_update_refreshes_cached_timestamp(
        self, service: UserService, users: InMemoryDocumentStore, cache_store: CommitCheckingStore
    ) -> None:
        """The cached detail carries the row's new updatedAt, memberships stay lean."""
        users.docs["u1"]["updatedAt"] = "2024-01-01T00:00:00"
        await service.get_user("u1")
        await service.get_membership("u1", "g1")

        updated = await service.update_user("u1", {"fullName": "Ada King"})

        cached = orjson.loads(cache_store.data["user-u1-details"])
        assert cached["updatedAt"] == updated["updatedAt"] != "2024-01-01T00:00:00"
        membership = orjson.loads(cache_store.data["user-group-u1-g1"])
        assert "updatedAt" not in membership

    @pytest.mark.asyncio
    async def test_invalidation_runs_after_commit(
        self, service: UserService, cache_store: CommitCheckingStore
    ) -> None:
        """Every invalidation scan observes the committed write."""
        await service.update_user("u1", {"fullName": "Ada King"})

        assert cache_store.seen
        assert all(state["fullName"] == "Ada King" for state in cache_store.seen)

    @pytest.mark.asyncio
    async def test_delete_evicts_everything(
        self, service: UserService, users: InMemoryDocumentStore, cache_store: CommitCheckingStore
    ) -> None:
        """A soft-deleted user disappears from every cached family."""
        await service.get_user("u1")
        await service.get_membership("u1", "g1")
        await service.list_users({"page": 1})

        deleted = await service.delete_user("u1")

        assert deleted["isDeleted"] is True
        assert deleted["isUserVerified"] is False
        assert all(state["isDeleted"] for state in cache_store.seen)
        assert not any(key.startswith(("user-u1-", "user-group-u1-", "users-")) for key in cache_store.data)
        with pytest.raises(NotFoundError):
            await service.get_user("u1")

    @pytest.mark.asyncio
    async def test_failed_write_leaves_cache(
        self, service: UserService, cache_store: CommitCheckingStore
    ) -> None:
        """Writes to a deleted user fail before any invalidation."""
        with pytest.raises(NotFoundError):
            await service.update_user("u3", {"fullName": "x"})

        assert cache_store.scan_calls == 0

    @pytest.mark.asyncio
    async def test_unreachable_cache_does_not_fail_write(
        self, service: UserService, users: InMemoryDocumentStore, cache_store: CommitCheckingStore
    ) -> None:
        """The write commits even when invalidation can't reach the cache."""
        cache_store.failing.add("scan")

        updated = await service.update_user("u2", {"role": "ADMIN"})

        assert updated["role"] == "ADMIN"
        assert users.docs["u2"]["role"] == "ADMIN"
