"""Tests for cache key generation."""

from academy.cache.keys import CacheKeys
from tests.fakes import redis_glob_match


class TestCacheKeys:
    """Test cache key generation."""

    def test_details_key(self) -> None:
        """Detail key has correct format."""
        assert CacheKeys.details("user", "abc123") == "user-abc123-details"

    def test_collection_key_from_dict(self) -> None:
        """Collection key embeds compact JSON in insertion order."""
        key = CacheKeys.collection("groups", {"page": 1, "limit": 10})
        assert key == 'groups-{"page":1,"limit":10}'

    def test_collection_key_keeps_insertion_order(self) -> None:
        """Queries with the same fields in a different order get different keys."""
        first = CacheKeys.collection("users", {"page": 1, "limit": 10})
        second = CacheKeys.collection("users", {"limit": 10, "page": 1})
        assert first != second

    def test_collection_key_from_serialized_query(self) -> None:
        """An already serialized query is used verbatim."""
        assert CacheKeys.collection("users", '{"page":2}') == 'users-{"page":2}'

    def test_serialize_query_booleans_and_none(self) -> None:
        """Serialization matches JSON literals."""
        serialized = CacheKeys.serialize_query({"isDeleted": False, "role": None})
        assert serialized == '{"isDeleted":false,"role":null}'

    def test_relation_key(self) -> None:
        """Relation key joins both entities and both ids."""
        assert CacheKeys.relation("user", "group", "u1", "g2") == "user-group-u1-g2"

    def test_parse_details(self) -> None:
        """Detail key is split into entity and id."""
        assert CacheKeys.parse_details("user-abc123-details") == ("user", "abc123")

    def test_parse_details_keeps_dashes_in_id(self) -> None:
        """Ids may contain the separator; only the first one splits."""
        key = CacheKeys.details("course_content", "3f2a-77b1")
        assert CacheKeys.parse_details(key) == ("course_content", "3f2a-77b1")

    def test_parse_invalid_key_returns_none(self) -> None:
        """Keys that aren't detail keys return None."""
        assert CacheKeys.parse_details("invalid") is None
        assert CacheKeys.parse_details("users-{}") is None
        assert CacheKeys.parse_details("user-details") is None


class TestCachePatterns:
    """Test glob patterns used for invalidation."""

    def test_entity_pattern_matches_only_that_entity(self) -> None:
        """Entity pattern doesn't bleed into ids sharing a prefix."""
        pattern = CacheKeys.entity_pattern("user", "4")
        assert redis_glob_match(pattern, "user-4-details")
        assert not redis_glob_match(pattern, "user-42-details")

    def test_collection_pattern(self) -> None:
        """Collection pattern matches every listing of the family."""
        pattern = CacheKeys.collection_pattern("users")
        assert redis_glob_match(pattern, 'users-{"page":1}')
        assert not redis_glob_match(pattern, "user-1-details")

    def test_relation_patterns(self) -> None:
        """Relation patterns select by either side of the pair."""
        key = CacheKeys.relation("user", "group", "u1", "g2")
        assert redis_glob_match(CacheKeys.relation_pattern("user", "group", "u1"), key)
        assert redis_glob_match(CacheKeys.relation_target_pattern("user", "group", "g2"), key)
        assert not redis_glob_match(CacheKeys.relation_pattern("user", "group", "u2"), key)

    def test_escape_glob(self) -> None:
        """Glob characters are backslash-escaped, everything else is kept."""
        assert CacheKeys.escape_glob("a*b?[c]\\d") == "a\\*b\\?\\[c\\]\\\\d"
        assert CacheKeys.escape_glob("3f2c-9a") == "3f2c-9a"

    def test_identifier_with_glob_characters_matches_itself(self) -> None:
        """An id like ``a*`` never widens a pattern to other ids."""
        pattern = CacheKeys.entity_pattern("user", "a*")
        assert redis_glob_match(pattern, "user-a*-details")
        assert not redis_glob_match(pattern, "user-ab-details")
        target = CacheKeys.relation_target_pattern("user", "group", "g?")
        assert redis_glob_match(target, "user-group-u1-g?")
        assert not redis_glob_match(target, "user-group-u1-g1")
